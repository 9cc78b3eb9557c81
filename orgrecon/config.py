from __future__ import annotations

from pathlib import Path
from typing import Optional

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_REPO_ROOT = Path(__file__).resolve().parents[1]


class Settings(BaseSettings):
    """
    Inputs, output folders and run limits for a reconciliation run.
    Every field can be overridden from the environment as ORGRECON_<FIELD>;
    relative paths are taken relative to `project_root`.
    """

    model_config = SettingsConfigDict(env_prefix="ORGRECON_", extra="ignore")

    project_root: Path = Field(default_factory=lambda: _REPO_ROOT)

    # inputs
    data_dir: Path = Field(default=Path("data"))
    roster_path: Optional[Path] = None
    roster_sheet: str = "ALL REGIONS"
    chart_map: Optional[Path] = Field(default=None, description="YAML list of PDFs and pages")

    # outputs
    output_dir: Path = Field(default=Path("artifacts"))
    schema_file: Optional[Path] = Field(default=Path("schema") / "snapshot.schema.json")

    # run limits
    page_timeout: float = Field(default=30.0, gt=0, description="seconds per PDF page")
    reconcile_workers: int = Field(default=1, ge=1)
    iteration_factor: int = Field(default=3, ge=1)
    recursion_max_depth: int = Field(default=200, ge=1)

    @field_validator(
        "data_dir", "roster_path", "chart_map", "output_dir", "schema_file", mode="before"
    )
    @classmethod
    def _blank_is_none(cls, v):
        # env values arrive as strings; "" unsets an optional path
        if isinstance(v, str):
            v = v.strip()
            return Path(v).expanduser() if v else None
        return v.expanduser() if isinstance(v, Path) else v

    def _subdir(self, name: str) -> Path:
        path = self.output_dir / name
        path.mkdir(parents=True, exist_ok=True)
        return path

    @computed_field(return_type=Path)
    def output_dir_extract(self) -> Path:
        return self._subdir("extract")

    @computed_field(return_type=Path)
    def output_dir_reconcile(self) -> Path:
        return self._subdir("reconcile")

    @computed_field(return_type=Path)
    def output_dir_charts(self) -> Path:
        return self._subdir("charts")

    def model_post_init(self, __context) -> None:
        root = self.project_root
        for name in ("data_dir", "roster_path", "chart_map", "output_dir", "schema_file"):
            p = getattr(self, name)
            if p is not None and not p.is_absolute():
                setattr(self, name, (root / p).resolve())
        self.output_dir.mkdir(parents=True, exist_ok=True)


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Process-wide settings, built on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
