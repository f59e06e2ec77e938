"""
Pipeline Configuration
======================

Settings for the microarray analysis pipeline, loaded from a YAML file and
validated with pydantic. Environment variables prefixed with
``PROSTATE_ARRAY_`` (nested fields separated by ``__``) override the YAML file.

Example:
    PROSTATE_ARRAY_STATISTICS__N_JOBS=4 prostate-array --config configs/config.yaml
"""

from pathlib import Path
from typing import List, Optional, Literal, Union
import logging

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .de_analysis.multiple_testing import CORRECTION_METHODS, PRODUCTION_METHOD

logger = logging.getLogger(__name__)


class DataConfig(BaseModel):
    """Input and output locations."""

    raw_dir: Path = Path("data/raw")
    annotation_file: Path = Path("data/annotation.tsv")
    output_dir: Path = Path("results")


class AnnotationConfig(BaseModel):
    """Sample annotation columns and categorical derivations."""

    sample_id_column: str = "sample_id"
    age_column: str = "age"
    tissue_column: str = "tissue"
    margin_column: str = "margin_status"
    recurrence_column: str = "bcr_status"

    # age >= threshold -> 'old', otherwise 'young'
    age_threshold: float = 60.0
    # tissue labels (case-insensitive) that make a sample 'Normal'
    normal_tissue_labels: List[str] = ["normal"]
    missing_label: str = "Unknown"


class NormalizationConfig(BaseModel):
    background_correction: bool = True


class FilteringConfig(BaseModel):
    cv_quantile: float = 0.75
    min_abs_mean: float = 1e-8

    @field_validator("cv_quantile")
    @classmethod
    def _check_quantile(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError(f"cv_quantile must lie in (0, 1), got {v}")
        return v


class ExplorationConfig(BaseModel):
    n_components: int = 5
    n_clusters: int = 2
    linkage_method: str = "complete"
    distance_metric: str = "euclidean"

    # Manual exclusion list, judged from the mean pairwise correlation
    outlier_samples: List[str] = []
    # Samples below this mean correlation are reported (never removed)
    outlier_correlation_threshold: Optional[float] = None


class CovariateTest(BaseModel):
    """One covariate and the rank test used against it."""

    name: str
    column: str
    test: Literal["rank_correlation", "rank_sum", "kruskal"]
    # Grouping for the variance-homogeneity test (defaults to `column`)
    group_column: Optional[str] = None
    # (case, reference) levels for rank_sum
    contrast: Optional[List[str]] = None

    @model_validator(mode="after")
    def _check_contrast(self):
        if self.contrast is not None and len(self.contrast) != 2:
            raise ValueError(
                f"Covariate '{self.name}': contrast needs exactly two levels, "
                f"got {self.contrast}"
            )
        if self.test == "rank_correlation" and self.contrast is not None:
            raise ValueError(
                f"Covariate '{self.name}': contrast is only valid for rank_sum"
            )
        return self


def _default_covariates() -> List[CovariateTest]:
    return [
        CovariateTest(name="age", column="age", test="rank_correlation",
                      group_column="age_group"),
        CovariateTest(name="disease", column="disease_status", test="rank_sum",
                      contrast=["Disease", "Normal"]),
        CovariateTest(name="margin", column="margin_status", test="kruskal"),
        CovariateTest(name="recurrence", column="bcr_status", test="kruskal"),
    ]


class StatisticsConfig(BaseModel):
    alpha: float = 0.05
    # Benjamini-Hochberg is the production correction
    correction_method: str = PRODUCTION_METHOD
    min_unique_normality: int = 4
    n_permutations: int = 1000
    n_jobs: int = 1
    covariates: List[CovariateTest] = Field(default_factory=_default_covariates)
    intersection: List[str] = ["disease", "margin", "recurrence"]

    @field_validator("correction_method")
    @classmethod
    def _check_method(cls, v: str) -> str:
        if v not in CORRECTION_METHODS:
            raise ValueError(
                f"Unknown correction method '{v}'. "
                f"Choose from {sorted(CORRECTION_METHODS)}"
            )
        return v

    @model_validator(mode="after")
    def _check_intersection(self):
        names = [c.name for c in self.covariates]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate covariate names: {names}")
        unknown = [n for n in self.intersection if n not in names]
        if unknown:
            raise ValueError(f"Intersection refers to unknown covariates: {unknown}")
        return self


class ClassificationConfig(BaseModel):
    targets: List[str] = ["disease_status", "margin_status", "bcr_status"]
    test_size: float = 0.25
    kernel: str = "linear"
    save_models: bool = False

    @field_validator("test_size")
    @classmethod
    def _check_test_size(cls, v: float) -> float:
        if not 0 < v < 1:
            raise ValueError(f"test_size must lie in (0, 1), got {v}")
        return v


class OutputConfig(BaseModel):
    make_plots: bool = True


class PipelineConfig(BaseSettings):
    """Complete pipeline settings."""

    model_config = SettingsConfigDict(
        env_prefix="PROSTATE_ARRAY_",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # environment variables take precedence over values from the YAML file
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    project_name: str = "prostate-microarray"
    random_state: int = 42

    data: DataConfig = Field(default_factory=DataConfig)
    annotation: AnnotationConfig = Field(default_factory=AnnotationConfig)
    normalization: NormalizationConfig = Field(default_factory=NormalizationConfig)
    filtering: FilteringConfig = Field(default_factory=FilteringConfig)
    exploration: ExplorationConfig = Field(default_factory=ExplorationConfig)
    statistics: StatisticsConfig = Field(default_factory=StatisticsConfig)
    classification: ClassificationConfig = Field(default_factory=ClassificationConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    def resolve_paths(self, base_dir: Union[str, Path]) -> "PipelineConfig":
        """Make relative data paths absolute with respect to `base_dir`."""
        base_dir = Path(base_dir)
        for field in ("raw_dir", "annotation_file", "output_dir"):
            path = getattr(self.data, field)
            if not path.is_absolute():
                setattr(self.data, field, (base_dir / path).resolve())
        return self


def load_config(config_path: Union[str, Path]) -> PipelineConfig:
    """
    Load and validate a YAML configuration file.

    Relative paths in the ``data`` section are resolved against the
    directory holding the YAML file.

    Parameters
    ----------
    config_path : str or Path
        Path to YAML configuration file

    Returns
    -------
    PipelineConfig
        Validated configuration
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, 'r') as f:
        raw = yaml.safe_load(f) or {}

    config = PipelineConfig(**raw)
    config.resolve_paths(config_path.parent)

    logger.info(f"Loaded configuration for: {config.project_name}")
    return config
