"""
Shared fixtures: a small simulated prostate array study.

24 arrays (12 normal, 12 tumor) of 40 genes with 4 probes each. The first
six genes are expressed 3 log2 units higher in tumor; every tumor sample
is margin-positive or close and has recurred, so those genes separate all
three clinical covariates.
"""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
import yaml

N_SAMPLES = 24
N_GENES = 40
N_PROBES = 4
SAMPLES = [f"S{i:02d}" for i in range(1, N_SAMPLES + 1)]
GENES = [f"G{i:03d}" for i in range(1, N_GENES + 1)]
INFORMATIVE_GENES = GENES[:6]
TUMOR_SHIFT = 3.0


def _is_tumor(i: int) -> bool:
    return i >= N_SAMPLES // 2


def make_annotation_table() -> pd.DataFrame:
    """Raw annotation table as it would be read from disk."""
    rng = np.random.default_rng(7)
    ages = rng.integers(45, 76, size=N_SAMPLES).astype(float)
    ages[3] = np.nan

    rows = []
    for i, sample in enumerate(SAMPLES):
        tumor = _is_tumor(i)
        rows.append({
            'sample_id': sample,
            'age': ages[i],
            'tissue': 'tumor' if tumor else 'normal',
            'margin_status': ('Positive' if i % 2 else 'Close') if tumor else 'Negative',
            'bcr_status': 'Yes' if tumor else 'No'
        })
    return pd.DataFrame(rows)


def make_log2_expression(seed: int = 11) -> pd.DataFrame:
    """Gene-level log2 expression (genes x samples)."""
    rng = np.random.default_rng(seed)
    base = rng.uniform(7.0, 10.0, size=N_GENES)
    values = base[:, np.newaxis] + rng.normal(0, 0.15, size=(N_GENES, N_SAMPLES))
    tumor = np.array([_is_tumor(i) for i in range(N_SAMPLES)])
    values[:len(INFORMATIVE_GENES), tumor] += TUMOR_SHIFT
    return pd.DataFrame(values, index=pd.Index(GENES, name='gene_id'), columns=SAMPLES)


def make_probe_intensities(seed: int = 13) -> pd.DataFrame:
    """Raw probe intensities: normal background plus log2-scale signal."""
    rng = np.random.default_rng(seed)
    expression = make_log2_expression(seed)
    frames = []
    for gene in GENES:
        affinity = rng.normal(0, 0.3, size=N_PROBES)
        signal = 2 ** (expression.loc[gene].values[np.newaxis, :] + affinity[:, np.newaxis])
        background = rng.normal(100, 15, size=(N_PROBES, N_SAMPLES)).clip(min=20)
        index = pd.MultiIndex.from_tuples(
            [(gene, f"{gene}_p{j}") for j in range(N_PROBES)], names=['gene_id', 'probe_id']
        )
        frames.append(pd.DataFrame(signal + background, index=index, columns=SAMPLES))
    return pd.concat(frames).sort_index()


def write_study(base_dir: Path) -> Path:
    """Write per-sample intensity files and the annotation table."""
    raw_dir = base_dir / "raw"
    raw_dir.mkdir(parents=True, exist_ok=True)

    probes = make_probe_intensities()
    for sample in SAMPLES:
        table = probes[sample].rename('intensity').reset_index()
        table[['probe_id', 'gene_id', 'intensity']].to_csv(
            raw_dir / f"{sample}.tsv", sep='\t', index=False
        )

    make_annotation_table().to_csv(base_dir / "annotation.tsv", sep='\t', index=False)
    return base_dir


@pytest.fixture
def study_dir(tmp_path):
    return write_study(tmp_path / "study")


@pytest.fixture
def expression():
    return make_log2_expression()


@pytest.fixture
def probe_intensities():
    return make_probe_intensities()


@pytest.fixture
def annotation():
    """Processed annotation with derived fields, indexed by sample id."""
    table = make_annotation_table().set_index('sample_id')
    table['age'] = table['age'].fillna(table['age'].median())
    table['age_group'] = np.where(table['age'] >= 60, 'old', 'young')
    table['disease_status'] = np.where(table['tissue'] == 'normal', 'Normal', 'Disease')
    return table


@pytest.fixture
def config_file(study_dir, tmp_path):
    """YAML config pointing at the simulated study with relative paths."""
    config = {
        'project_name': 'simulated-study',
        'data': {
            'raw_dir': 'study/raw',
            'annotation_file': 'study/annotation.tsv',
            'output_dir': 'results'
        },
        'statistics': {'n_permutations': 20},
        'output': {'make_plots': False}
    }
    path = tmp_path / "config.yaml"
    with open(path, 'w') as f:
        yaml.safe_dump(config, f)
    return path
