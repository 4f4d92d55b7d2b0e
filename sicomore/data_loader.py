# data_loader.py
import logging
import pandas as pd
from pathlib import Path
from typing import List, Optional, Tuple


logger = logging.getLogger(__name__)

SUPPORTED_TABLES = {'.csv': ',', '.tsv': '\t', '.txt': '\t'}


class DataLoader:
    """Handles loading and preprocessing of predictor matrices and phenotypes."""

    def _read_table(self, file_path: str) -> pd.DataFrame:
        path = Path(file_path)
        suffix = path.suffix.lower()
        if suffix not in SUPPORTED_TABLES:
            raise ValueError(f"Unsupported format: {path.suffix}")
        df = pd.read_csv(path, sep=SUPPORTED_TABLES[suffix], index_col=0)

        duplicates = df.index.duplicated(keep=False)
        if duplicates.any():
            logger.warning(f"Found {duplicates.sum()} duplicate sample IDs in {path.name}. Keeping first occurrence.")
            df = df[~df.index.duplicated(keep='first')]
        return df

    def load_predictor_matrix(self, file_path: str) -> pd.DataFrame:
        """
        Load a predictor matrix (samples in rows, variables in columns) and deduplicate samples.
        """
        logger.info(f"Loading predictor matrix from: {file_path}")
        df = self._read_table(file_path)
        non_numeric = [c for c in df.columns if not pd.api.types.is_numeric_dtype(df[c])]
        if non_numeric:
            raise ValueError(f"Non-numeric variables in {file_path}: {non_numeric[:5]}")
        return df

    def load_response(self, file_path: str, column: Optional[str] = None) -> pd.Series:
        """
        Load the phenotype from a CSV/TSV table. Uses the first column when none is named.
        """
        logger.info(f"Loading response from: {file_path}")
        df = self._read_table(file_path)
        if column is None:
            if df.shape[1] == 0:
                raise ValueError(f"No response column in {file_path}.")
            column = df.columns[0]
        elif column not in df.columns:
            raise ValueError(f"Response column '{column}' not found in {file_path}.")
        return pd.to_numeric(df[column], errors='raise').rename(column)

    def align_data(self, response: pd.Series, matrices: List[pd.DataFrame], names: List[str],
                   output_dir: Optional[str] = None) -> Tuple[pd.Series, List[pd.DataFrame]]:
        """
        Align the phenotype and predictor matrices on their common samples,
        drop samples with a missing phenotype or missing predictors, and remove
        invariant variables.

        Args:
            response (pd.Series): Phenotype indexed by sample.
            matrices (List[pd.DataFrame]): Predictor matrices indexed by sample.
            names (List[str]): Name of each matrix, used for logging and saved files.
            output_dir (Optional[str]): Directory to save aligned data (default: None).

        Returns:
            Tuple[pd.Series, List[pd.DataFrame]]: Aligned phenotype and matrices.

        Raises:
            ValueError: If no sample is shared by all inputs or a matrix loses all variables.
        """
        logger.info("Aligning phenotype and predictor matrices...")

        common = response.index[response.notna().to_numpy()]
        for matrix in matrices:
            common = common.intersection(matrix.index)
        if common.empty:
            raise ValueError("No common samples between the response and the predictor matrices.")

        complete = pd.Series(True, index=common)
        for name, matrix in zip(names, matrices):
            rows_ok = ~matrix.loc[common].isna().any(axis=1)
            if (~rows_ok).any():
                logger.warning(f"Dropping {(~rows_ok).sum()} sample(s) with missing values in {name}.")
            complete &= rows_ok
        common = common[complete.to_numpy()]
        if common.empty:
            raise ValueError("No sample left after removing missing values.")

        aligned_response = response.loc[common]
        aligned = []
        for name, matrix in zip(names, matrices):
            matrix = matrix.loc[common]
            invariants = matrix.nunique() <= 1
            if invariants.any():
                logger.info(f"Removing {invariants.sum()} invariant variable(s) from {name}.")
                matrix = matrix.loc[:, ~invariants]
            if matrix.shape[1] == 0:
                raise ValueError(f"No variable left in {name} after removing invariant variables.")
            aligned.append(matrix)

        if output_dir:
            output_path = Path(output_dir)
            output_path.mkdir(parents=True, exist_ok=True)
            aligned_response.to_csv(output_path / "aligned_response.csv")
            for name, matrix in zip(names, aligned):
                matrix.to_csv(output_path / f"aligned_{name}.csv")
            logger.info(f"Saved aligned data to: {output_path}")

        logger.info(f"Aligned data: {len(common)} samples, "
                    + ", ".join(f"{name}: {m.shape[1]} variables" for name, m in zip(names, aligned)))
        return aligned_response, aligned
