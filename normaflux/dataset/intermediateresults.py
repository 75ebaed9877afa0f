from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Optional, List

import numpy as np
import pandas as pd


@dataclass
class NormalizationResults:
    # Normalized log2 matrices (features x samples) per method
    matrices: Dict[str, np.ndarray] = field(default_factory=dict)

    # Written <method>-normalized.txt files
    files: Dict[str, Path] = field(default_factory=dict)

    # Sample columns (design order) and feature index shared by every matrix
    columns: Optional[List[str]] = None
    index: Optional[np.ndarray] = None

    # Pooled intragroup metrics, one row per method
    metrics: Optional[pd.DataFrame] = None
    metrics_path: Optional[Path] = None
    report_path: Optional[Path] = None

    def set_columns_and_index(self, df: pd.DataFrame):
        """Set columns and index once from a (features x samples) frame."""
        self.columns = [str(c) for c in df.columns]
        self.index = df.index.to_numpy()

    def add_matrix(self, name: str, matrix: np.ndarray):
        """Add a matrix with automatic shape validation."""
        if self.index is not None and matrix.shape[0] != len(self.index):
            raise ValueError(f"Matrix '{name}' has inconsistent row dimension.")
        if self.columns is not None and matrix.shape[1] != len(self.columns):
            raise ValueError(f"Matrix '{name}' has inconsistent column dimension.")
        self.matrices[name] = matrix

    def add_file(self, name: str, path: Path):
        self.files[name] = Path(path)

    @property
    def methods(self) -> List[str]:
        return list(self.matrices.keys())
