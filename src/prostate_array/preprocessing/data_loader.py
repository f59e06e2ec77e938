"""
Microarray Data Loader and Sample Annotation
============================================

This module handles:
1. Loading raw per-sample probe intensity files
2. Loading the sample annotation table, imputing missing values and
   deriving categorical fields (age group, disease status)
3. Per-sample QC metrics
4. Validated alignment of expression matrices with annotations
5. Manual, named outlier exclusion
"""

import pandas as pd
import numpy as np
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union
import logging

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

RAW_FILE_SUFFIXES = ('.txt', '.tsv', '.csv')
PROBE_COLUMNS = ('probe_id', 'gene_id', 'intensity')


class SampleAlignmentError(ValueError):
    """Sample identifiers of an expression matrix and annotation disagree."""


class MicroarrayDataLoader:
    """Load raw microarray intensities and sample annotations."""

    def __init__(
        self,
        raw_dir: Union[str, Path],
        annotation_file: Union[str, Path],
        sample_id_column: str = 'sample_id',
        age_column: str = 'age',
        tissue_column: str = 'tissue',
        categorical_columns: Optional[List[str]] = None,
        age_threshold: float = 60.0,
        normal_tissue_labels: Iterable[str] = ('normal',),
        missing_label: str = 'Unknown'
    ):
        """
        Initialize the loader.

        Parameters
        ----------
        raw_dir : str or Path
            Directory with one intensity file per sample
        annotation_file : str or Path
            Tab-separated sample annotation table
        sample_id_column : str
            Annotation column holding the sample identifiers
        age_column : str
            Numeric age column
        tissue_column : str
            Tissue-of-origin column, used to derive disease status
        categorical_columns : List[str], optional
            Further categorical columns to impute (e.g. margin and
            recurrence status)
        age_threshold : float
            Samples with age >= threshold are 'old', others 'young'
        normal_tissue_labels : Iterable[str]
            Tissue labels (case-insensitive) marking 'Normal' samples
        missing_label : str
            Label used to fill missing categorical values
        """
        self.raw_dir = Path(raw_dir)
        self.annotation_file = Path(annotation_file)
        self.sample_id_column = sample_id_column
        self.age_column = age_column
        self.tissue_column = tissue_column
        self.categorical_columns = list(categorical_columns or [])
        self.age_threshold = age_threshold
        self.normal_tissue_labels = {label.lower() for label in normal_tissue_labels}
        self.missing_label = missing_label

        self.probe_intensities: Optional[pd.DataFrame] = None
        self.annotation: Optional[pd.DataFrame] = None

    def _raw_files(self) -> List[Path]:
        if not self.raw_dir.is_dir():
            raise FileNotFoundError(f"Raw intensity directory not found: {self.raw_dir}")

        files = sorted(
            p for p in self.raw_dir.iterdir()
            if p.is_file() and p.suffix.lower() in RAW_FILE_SUFFIXES
        )
        if not files:
            raise FileNotFoundError(f"No intensity files found in {self.raw_dir}")
        return files

    def _read_sample_file(self, path: Path) -> pd.Series:
        sep = ',' if path.suffix.lower() == '.csv' else '\t'
        df = pd.read_csv(path, sep=sep)

        missing = [c for c in PROBE_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"{path.name}: missing columns {missing}")

        df['gene_id'] = df['gene_id'].astype(str)
        df['probe_id'] = df['probe_id'].astype(str)
        series = df.set_index(['gene_id', 'probe_id'])['intensity'].astype(float)

        if series.index.duplicated().any():
            raise ValueError(f"{path.name}: duplicated probe identifiers")
        return series

    def load_intensities(self) -> pd.DataFrame:
        """
        Load raw probe intensities from the sample files.

        Each file holds one sample (the file stem is the sample id) with
        `probe_id`, `gene_id` and `intensity` columns.

        Returns
        -------
        pd.DataFrame
            Probe intensities indexed by (gene_id, probe_id), one column
            per sample
        """
        files = self._raw_files()
        logger.info(f"Loading {len(files)} intensity files from {self.raw_dir}")

        columns: Dict[str, pd.Series] = {}
        reference_index = None

        for path in files:
            sample_id = path.stem
            if sample_id in columns:
                raise ValueError(f"Duplicate sample id from file name: {sample_id}")

            series = self._read_sample_file(path)
            if reference_index is None:
                reference_index = series.index
            elif not series.index.sort_values().equals(reference_index.sort_values()):
                raise ValueError(
                    f"{path.name}: probe set differs from {files[0].name}"
                )
            columns[sample_id] = series.reindex(reference_index)

        probes = pd.DataFrame(columns)
        probes = probes.sort_index()

        if probes.isna().any().any():
            raise ValueError("Raw intensities contain missing values")

        n_genes = probes.index.get_level_values('gene_id').nunique()
        logger.info(f"Loaded {probes.shape[0]} probes ({n_genes} genes) x "
                    f"{probes.shape[1]} samples")

        self.probe_intensities = probes
        return probes

    def load_annotations(self) -> pd.DataFrame:
        """
        Load the sample annotation table.

        Missing numeric values are filled with the column median, missing
        categorical values with `missing_label`. Two fields are derived:
        `age_group` and `disease_status`.

        Returns
        -------
        pd.DataFrame
            Annotation indexed by sample id
        """
        if not self.annotation_file.exists():
            raise FileNotFoundError(f"Annotation file not found: {self.annotation_file}")

        logger.info(f"Loading annotations from {self.annotation_file}")
        text_columns = [self.sample_id_column, self.tissue_column] + self.categorical_columns
        annotation = pd.read_csv(self.annotation_file, sep='\t',
                                 dtype={column: str for column in text_columns})

        required = [self.sample_id_column, self.age_column, self.tissue_column]
        required += self.categorical_columns
        missing = [c for c in required if c not in annotation.columns]
        if missing:
            raise ValueError(f"Annotation file is missing columns: {missing}")

        if annotation[self.sample_id_column].isna().any():
            raise ValueError("Annotation contains rows without a sample id")
        if annotation[self.sample_id_column].duplicated().any():
            dupes = annotation.loc[
                annotation[self.sample_id_column].duplicated(), self.sample_id_column
            ].tolist()
            raise ValueError(f"Duplicate sample ids in annotation: {dupes}")

        annotation = annotation.set_index(self.sample_id_column)
        annotation.index.name = 'sample_id'

        annotation = self.impute_missing(annotation)
        annotation = self.derive_fields(annotation)

        self.annotation = annotation
        logger.info(f"Loaded annotations for {len(annotation)} samples")
        return annotation

    def impute_missing(self, annotation: pd.DataFrame) -> pd.DataFrame:
        """Median-fill numeric columns and label-fill categorical ones."""
        annotation = annotation.copy()

        annotation[self.age_column] = pd.to_numeric(annotation[self.age_column], errors='coerce')
        categorical = [self.tissue_column] + self.categorical_columns

        for column in annotation.columns:
            n_missing = int(annotation[column].isna().sum())
            if n_missing == 0:
                continue

            if column not in categorical and pd.api.types.is_numeric_dtype(annotation[column]):
                fill = annotation[column].median()
                if pd.isna(fill):
                    raise ValueError(f"Column '{column}' has no values to impute from")
                annotation[column] = annotation[column].fillna(fill)
                logger.info(f"Imputed {n_missing} missing '{column}' values with median {fill}")
            else:
                annotation[column] = annotation[column].astype(object).fillna(self.missing_label)
                logger.info(f"Imputed {n_missing} missing '{column}' values with "
                            f"'{self.missing_label}'")

        for column in categorical:
            annotation[column] = annotation[column].astype(str)

        return annotation

    def derive_fields(self, annotation: pd.DataFrame) -> pd.DataFrame:
        """Add `age_group` and `disease_status`."""
        annotation = annotation.copy()

        annotation['age_group'] = np.where(
            annotation[self.age_column] >= self.age_threshold, 'old', 'young'
        )
        is_normal = annotation[self.tissue_column].str.lower().isin(self.normal_tissue_labels)
        annotation['disease_status'] = np.where(is_normal, 'Normal', 'Disease')

        print("\n=== Sample Annotation Summary ===")
        print(f"Age groups: {annotation['age_group'].value_counts().to_dict()}")
        print(f"Disease status: {annotation['disease_status'].value_counts().to_dict()}")
        for column in self.categorical_columns:
            print(f"{column}: {annotation[column].value_counts().to_dict()}")

        return annotation


def align_samples(
    expression: pd.DataFrame,
    annotation: pd.DataFrame
) -> pd.DataFrame:
    """
    Join annotation rows to expression columns by sample id.

    Parameters
    ----------
    expression : pd.DataFrame
        Expression matrix (genes x samples)
    annotation : pd.DataFrame
        Annotation indexed by sample id

    Returns
    -------
    pd.DataFrame
        Annotation reordered to match the expression columns

    Raises
    ------
    SampleAlignmentError
        If the two sets of sample ids are not identical
    """
    samples = pd.Index(expression.columns)
    if samples.duplicated().any():
        raise SampleAlignmentError(
            f"Duplicate sample columns: {samples[samples.duplicated()].tolist()}"
        )

    missing_annotation = sorted(set(samples) - set(annotation.index))
    missing_expression = sorted(set(annotation.index) - set(samples))

    if missing_annotation or missing_expression:
        raise SampleAlignmentError(
            f"Sample ids do not match: {len(missing_annotation)} without annotation "
            f"{missing_annotation[:10]}, {len(missing_expression)} without expression "
            f"{missing_expression[:10]}"
        )

    return annotation.loc[samples]


def exclude_samples(
    expression: pd.DataFrame,
    annotation: pd.DataFrame,
    samples: Iterable[str]
) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """
    Remove named samples from an expression matrix and its annotation.

    Parameters
    ----------
    expression : pd.DataFrame
        Expression matrix (genes x samples)
    annotation : pd.DataFrame
        Annotation indexed by sample id
    samples : Iterable[str]
        Sample ids to drop

    Returns
    -------
    Tuple[pd.DataFrame, pd.DataFrame]
        Expression and annotation without the excluded samples
    """
    samples = list(samples)
    unknown = [s for s in samples if s not in expression.columns or s not in annotation.index]
    if unknown:
        raise SampleAlignmentError(f"Cannot exclude unknown samples: {unknown}")

    if samples:
        logger.info(f"Excluding {len(samples)} samples: {samples}")

    kept_expression = expression.drop(columns=samples)
    kept_annotation = annotation.drop(index=samples)
    return kept_expression, align_samples(kept_expression, kept_annotation)


def calculate_qc_metrics(expression: pd.DataFrame) -> pd.DataFrame:
    """Per-sample intensity summary and mean pairwise correlation."""
    corr = expression.corr(method='pearson')
    n = corr.shape[0]
    if n > 1:
        mean_corr = (corr.sum(axis=1) - 1) / (n - 1)
    else:
        mean_corr = pd.Series(np.nan, index=corr.index)

    qc_df = pd.DataFrame({
        'sample_id': expression.columns,
        'mean_intensity': expression.mean(axis=0).values,
        'median_intensity': expression.median(axis=0).values,
        'sd_intensity': expression.std(axis=0).values,
        'mean_correlation': mean_corr.loc[expression.columns].values
    })

    print("\n=== QC Metrics Summary ===")
    print(qc_df.describe())

    return qc_df
