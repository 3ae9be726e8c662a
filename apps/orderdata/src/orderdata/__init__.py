from orderdata.locator import find_files
from orderdata.pipeline import PipelineConfig, RunResult, run_pipeline
from orderdata.splitter import split_file
from orderdata.types import FileRef, PartResult

__all__ = ["FileRef", "PartResult", "PipelineConfig", "RunResult", "find_files", "run_pipeline", "split_file"]
