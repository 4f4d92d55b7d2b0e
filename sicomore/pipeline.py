# pipeline.py
import json
import logging
import pickle
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import networkx as nx
from matplotlib.figure import Figure

from .config import SicomoreConfig
from .data_loader import DataLoader
from .model import SicomoreModel, sicomore

logger = logging.getLogger(__name__)


class SicomorePipeline:
    """
    Orchestrates the SICOMORE pipeline from files to exported results.
    """

    def __init__(self, config: SicomoreConfig):
        logger.info(f"Initializing SicomorePipeline with config: {vars(config)}")
        self.config = config.validate()
        self.loader = DataLoader()

    def run_pipeline(self, response_path: str, predictor_paths: Sequence[str],
                     response_column: Optional[str] = None, names: Optional[Sequence[str]] = None,
                     output_dir: Optional[str] = "results/", export_format: str = "json") -> SicomoreModel:
        """
        Execute the full pipeline: load data, select groups, model interactions, export.

        Args:
            response_path (str): Path to the phenotype table.
            predictor_paths (Sequence[str]): Paths to the predictor matrices.
            response_column (Optional[str]): Phenotype column. Defaults to the first column.
            names (Optional[Sequence[str]]): Dataset names. Defaults to the file stems.
            output_dir (Optional[str]): Output directory. Nothing is written if None.
            export_format (str): 'json' or 'pickle'.

        Returns:
            SicomoreModel: The fitted model.
        """
        if export_format not in ("json", "pickle"):
            raise ValueError(f"Unknown export format '{export_format}'. Expected 'json' or 'pickle'.")
        names = self._dataset_names(predictor_paths, names)

        logger.info("📥 Stage 1: Input Processing")
        response, matrices = self._load_and_preprocess(response_path, predictor_paths, response_column,
                                                       names, output_dir)

        logger.info("🌳 Stage 2: Group Selection and Interaction Modelling")
        model = sicomore(response, matrices, names=names, config=self.config)

        if output_dir:
            logger.info("📤 Stage 3: Output Generation")
            self._export(model, Path(output_dir), export_format)

        logger.info("✅ Pipeline completed successfully")
        return model

    def _dataset_names(self, predictor_paths: Sequence[str], names: Optional[Sequence[str]]) -> List[str]:
        if names:
            if len(names) != len(predictor_paths):
                raise ValueError(f"Got {len(names)} names for {len(predictor_paths)} predictor files.")
            return list(names)
        stems = [Path(p).stem for p in predictor_paths]
        return stems if len(set(stems)) == len(stems) else [f"X{k + 1}" for k in range(len(stems))]

    def _load_and_preprocess(self, response_path: str, predictor_paths: Sequence[str],
                             response_column: Optional[str], names: List[str], output_dir: Optional[str]):
        """Stage 1: load the phenotype and matrices, then align them on common samples."""
        response = self.loader.load_response(response_path, response_column)
        matrices = [self.loader.load_predictor_matrix(p) for p in predictor_paths]
        return self.loader.align_data(response, matrices, names, output_dir)

    def _export(self, model: SicomoreModel, output_path: Path, export_format: str) -> Dict[str, Path]:
        """Write results, per-pair matrices, the interaction graph and heatmaps."""
        output_path.mkdir(parents=True, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        written = {}

        if export_format == "json":
            results_file = output_path / f"sicomore_results_{timestamp}.json"
            with open(results_file, 'w') as f:
                json.dump(model.to_dict(), f, indent=2)
        else:
            results_file = output_path / f"sicomore_results_{timestamp}.pkl"
            with open(results_file, 'wb') as f:
                pickle.dump(model, f)
        written['results'] = results_file
        logger.info(f"Saved final results to: {results_file}")

        for level in model.levels:
            groups_file = output_path / f"groups_{level.name}.csv"
            level.compressed.to_csv(groups_file)
            written[f"groups_{level.name}"] = groups_file

        for i in range(len(model.names)):
            for j in range(i + 1, len(model.names)):
                pair = f"{model.names[i]}_{model.names[j]}"
                model.get_significance(i, j).to_csv(output_path / f"significance_{pair}.csv")
                model.interaction_matrix(i, j).to_csv(output_path / f"interactions_{pair}.csv")
                written[f"significance_{pair}"] = output_path / f"significance_{pair}.csv"
                if self.config.generate_plots and model.get_significance(i, j).size:
                    written[f"plot_{pair}"] = self._save_heatmap(model, i, j, output_path / f"interactions_{pair}.png")

        graph_file = output_path / "interaction_graph.graphml"
        nx.write_graphml(model.interaction_graph(), graph_file)
        written['graph'] = graph_file
        logger.info("Saved interaction graph to GraphML file.")
        return written

    def _save_heatmap(self, model: SicomoreModel, i: int, j: int, path: Path) -> Path:
        # Not registered with pyplot
        fig = Figure(figsize=(14, 6))
        axes = fig.subplots(1, 2)
        model.plot(i, j, values='coefficients', ax=axes[0])
        model.plot(i, j, values='significance', ax=axes[1])
        fig.tight_layout()
        fig.savefig(path, dpi=150, bbox_inches='tight')
        logger.info(f"Saved interaction heatmaps to: {path}")
        return path


def run_sicomore_analysis(**kwargs) -> SicomoreModel:
    """
    Entry-point function for pipeline execution.
    """
    logger.info("Initializing SICOMORE with provided configuration.")
    config = kwargs.pop('config', None) or SicomoreConfig()
    pipeline = SicomorePipeline(config)
    logger.info("Starting pipeline execution...")
    return pipeline.run_pipeline(**kwargs)
