"""
Batch command line interface for rule-line removal.

Filter every image in ``scans/`` with the default detector::

	rulier filter scans

Tune the zero-triads detector on a training set and store the result::

	rulier optimize --detector zero-triads --ground-truth gt/*.png --synthetic synth/*.png --params filters.pref
"""

import argparse
import logging
import sys
from concurrent.futures import ProcessPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import cv2

from .annealing import SimulatedAnnealing
from .config_validator import ConfigValidator, config_summary, load_config, print_validation_report
from .energy import synthesize
from .exceptions import RuleLineError
from .filters import DETECTORS, Detector, create_detector
from .image_utils import IMAGE_EXTENSIONS, get_image_info, load_image, save_image, to_binary, to_image
from .memory_manager import MemoryManager, calculate_optimal_workers
from .parameters import load_preferences, save_preferences
from .pdf_processor import PDFProcessor
from .task import Task

logger = logging.getLogger(__name__)

PDF_EXTENSIONS = {".pdf"}
OUTPUT_PREFIX = "(filtered) "


def configure_logging(cfg, debug: bool = False) -> None:
	logging_config = cfg.LOGGING_CONFIG
	level = logging.DEBUG if debug else getattr(logging, str(logging_config["level"]).upper(), logging.INFO)
	logging.basicConfig(level=level, format=logging_config["format"])


def gather_inputs(sources: Sequence[Path], recursive: bool = False) -> List[Path]:
	"""Collect image and PDF files from the provided locations."""
	accepted = IMAGE_EXTENSIONS | PDF_EXTENSIONS
	seen = set()
	files: List[Path] = []

	for source in sources:
		if source.is_dir():
			iterator: Iterable[Path] = source.rglob("*") if recursive else source.iterdir()
			candidates = [p for p in iterator if p.is_file() and p.suffix.lower() in accepted]
		elif source.is_file():
			if source.suffix.lower() not in accepted:
				logger.warning(f"지원하지 않는 파일 형식 (건너뜀): {source}")
				continue
			candidates = [source]
		else:
			logger.warning(f"입력 경로를 찾을 수 없습니다: {source}")
			continue

		for candidate in candidates:
			if candidate.name.startswith(OUTPUT_PREFIX):
				continue
			resolved = candidate.resolve()
			if resolved not in seen:
				seen.add(resolved)
				files.append(resolved)

	files.sort()
	return files


def output_dir_for(path: Path, output_dir: Optional[Path], subdir: str) -> Path:
	return output_dir if output_dir is not None else path.parent / subdir


def _read_pages(path: Path, dpi: int, memory_manager: MemoryManager) -> List[Tuple[str, np.ndarray]]:
	"""``(output file name, gray image)`` for an image or for every page of a PDF."""
	if path.suffix.lower() in PDF_EXTENSIONS:
		processor = PDFProcessor(memory_manager)
		return [
			(f"{OUTPUT_PREFIX}{path.stem} p{index + 1:03d}.png", gray)
			for index, gray in processor.render_pdf_to_images(path, dpi)
		]
	return [(f"{OUTPUT_PREFIX}{path.name}", load_image(path))]


def log_progress(name: str):
	"""Progress listener that writes percentages to the log."""
	def listener(progress: int, message: Optional[str]) -> None:
		if message is None:
			logger.info(f"[{name}] {progress}%")
	return listener


def filter_file(path: Path, detector: Detector, out_dir: Path, image_config: Dict, memory_limit_mb: float) -> Dict:
	"""Remove the rule lines of one file and write the result next to it.

	Failures are logged and reported in the returned record.
	"""
	memory_manager = MemoryManager(memory_limit_mb)
	outputs: List[str] = []
	task = Task(path.name)
	task.add_listener(log_progress(path.name))
	try:
		pages = _read_pages(path, image_config["pdf_dpi"], memory_manager)
		for index, (out_name, gray) in enumerate(pages):
			logger.debug(f"{out_name}: {get_image_info(gray)}")
			raster = to_binary(gray, image_config["gray_threshold"], source=str(path))
			memory_manager.check_raster_budget(raster.shape, image_config["max_image_dimension"])
			with memory_manager.memory_guard(f"{detector.name}: {path.name}"):
				result = detector.apply(raster, task=task)
			if result is None:
				return {"path": str(path), "success": False, "error": "검출기 모델이 학습되지 않았습니다"}
			outputs.append(str(save_image(out_dir / out_name, to_image(result))))
			task.set_progress(100 * (index + 1) // len(pages))
	except RuleLineError as e:
		logger.error(f"{path.name} 처리 실패: {e}")
		return {"path": str(path), "success": False, "error": str(e)}
	except MemoryError:
		logger.error(f"{path.name} 처리 중 메모리 부족")
		return {"path": str(path), "success": False, "error": "메모리 부족"}
	except cv2.error as e:
		logger.error(f"{path.name} OpenCV 오류: {e}")
		return {"path": str(path), "success": False, "error": str(e)}

	logger.info(f"{path.name} -> {', '.join(Path(o).name for o in outputs)}")
	return {"path": str(path), "success": True, "outputs": outputs}


def _load_rasters(paths: Sequence[Path], threshold: int) -> List[np.ndarray]:
	return [to_binary(load_image(p), threshold, source=str(p)) for p in paths]


def build_detector(args, cfg) -> Detector:
	"""Detector with preferences, ``--set`` overrides and, for the subspace, a model."""
	tag = args.detector or cfg.DETECTOR_CONFIG["default_detector"]
	detector = create_detector(tag)

	preferences = args.params or (Path(cfg.ROOT_DIR) / cfg.PREFERENCES_FILE)
	if Path(preferences).is_file():
		load_preferences(Path(preferences), [detector])

	for assignment in args.set or []:
		name, sep, value = assignment.partition("=")
		if not sep or name.strip() not in detector.parameters:
			raise RuleLineError(f"잘못된 파라미터 지정: {assignment}", "INVALID_PARAMETERS")
		detector.parameters.set(name.strip(), value.strip())

	if detector.uses_model:
		if getattr(args, "model", None):
			detector.load_model(args.model)
		if getattr(args, "train", None):
			detector.rebuild_model(_load_rasters(args.train, cfg.IMAGE_CONFIG["gray_threshold"]))

	logger.info(f"{detector.name}: {detector.parameters}")
	return detector


def run_filter(args, cfg) -> int:
	files = gather_inputs(args.inputs, recursive=args.recursive)
	if not files:
		logger.error("처리할 이미지를 찾지 못했습니다")
		return 1

	detector = build_detector(args, cfg)
	if not detector.is_ready():
		logger.error(f"{detector.name}: --model 또는 --train 으로 모델을 준비해야 합니다")
		return 1

	performance_config = cfg.PERFORMANCE_CONFIG
	output_dir = args.output_dir.resolve() if args.output_dir else None
	workers = args.workers or (performance_config["max_workers"] if performance_config["parallel_processing"] else 1)
	workers = min(workers, calculate_optimal_workers(performance_config["memory_limit_mb"]), len(files))

	jobs = [
		(path, detector, output_dir_for(path, output_dir, cfg.OUTPUT_SUBDIR), cfg.IMAGE_CONFIG, performance_config["memory_limit_mb"])
		for path in files
	]

	batch = Task("filter")
	batch.add_listener(log_progress(f"{len(files)}개 파일"))
	results = []
	if workers > 1:
		logger.info(f"{len(files)}개 파일 병렬 처리 중 (워커 수: {workers})")
		with ProcessPoolExecutor(max_workers=workers) as executor:
			futures = [executor.submit(filter_file, *job) for job in jobs]
			for future in as_completed(futures):
				results.append(future.result())
				batch.set_progress(100 * len(results) // len(files))
	else:
		logger.info(f"{len(files)}개 파일 순차 처리 중")
		for job in jobs:
			results.append(filter_file(*job))
			batch.set_progress(100 * len(results) // len(files))

	failed = [r for r in results if not r["success"]]
	logger.info(f"완료: 성공 {len(results) - len(failed)}, 실패 {len(failed)}")
	return 1 if failed and len(failed) == len(results) else 0


def run_optimize(args, cfg) -> int:
	threshold = cfg.IMAGE_CONFIG["gray_threshold"]
	ground_truths = _load_rasters(args.ground_truth, threshold)
	if args.synthetic:
		synthetics = _load_rasters(args.synthetic, threshold)
	elif args.text_only:
		texts = _load_rasters(args.text_only, threshold)
		if len(texts) != len(ground_truths):
			logger.error("정답 이미지와 텍스트 이미지의 개수가 다릅니다")
			return 1
		synthetics = [synthesize(gt, text) for gt, text in zip(ground_truths, texts)]
	else:
		logger.error("--synthetic 또는 --text-only 이미지가 필요합니다")
		return 1

	detector = build_detector(args, cfg)
	optimizer_config = cfg.OPTIMIZER_CONFIG
	annealing = SimulatedAnnealing(
		detector,
		ground_truths,
		synthetics,
		time=args.iterations or optimizer_config["iterations"],
		initial_temperature=optimizer_config["initial_temperature"],
		cooling_exponent=optimizer_config["cooling_exponent"],
		seed=args.seed if args.seed is not None else optimizer_config["seed"],
	)
	logger.info(f"초기 상태: {annealing.initial_state}")

	task = Task(f"optimize {detector.tag}")
	try:
		completed = annealing.start(task)
	except KeyboardInterrupt:
		task.cancel()
		completed = False

	optimum = annealing.optimum_parameters()
	print(f"Energy: {annealing.optimum_energy()}")
	for parameter in optimum:
		print(f"  {parameter}")

	detector.parameters = optimum
	if args.params:
		save_preferences(args.params, [detector])
	if detector.uses_model and args.save_model:
		detector.rebuild_model(ground_truths)
		detector.model.save(args.save_model)

	if not completed:
		logger.warning("최적화가 중단되었습니다 (지금까지의 최적값을 출력했습니다)")
		return 1
	return 0


def _add_detector_arguments(parser: argparse.ArgumentParser) -> None:
	parser.add_argument("-d", "--detector", choices=DETECTORS, help="Detector to run (default from config).")
	parser.add_argument("--set", action="append", metavar="NAME=VALUE", help="Override one detector parameter.")
	parser.add_argument("--params", type=Path, help="Preference file with stored detector parameters.")
	parser.add_argument("--model", type=Path, help="Stored subspace for the central-moments detector.")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
	parser = argparse.ArgumentParser(prog="rulier", description="Rule-line removal for scanned binary documents.")
	parser.add_argument("--root", type=Path, help="Directory holding config.py (default: current directory).")
	parser.add_argument("--debug", action="store_true", help="Enable verbose debug logging.")
	parser.add_argument("--check-config", action="store_true", help="Print the configuration report and exit.")
	commands = parser.add_subparsers(dest="command")

	filter_parser = commands.add_parser("filter", help="Remove rule lines from images or scanned PDFs.")
	filter_parser.add_argument("inputs", nargs="+", type=Path, help="Image/PDF files or directories.")
	filter_parser.add_argument("-o", "--output-dir", type=Path, help="Output directory (default: <input dir>/filtered-files).")
	filter_parser.add_argument("--recursive", action="store_true", help="Walk input directories recursively.")
	filter_parser.add_argument("--workers", type=int, help="Worker processes for the batch.")
	filter_parser.add_argument("--train", nargs="+", type=Path, help="Rule-line ground truth to train the subspace.")
	_add_detector_arguments(filter_parser)

	optimize_parser = commands.add_parser("optimize", help="Tune detector parameters with simulated annealing.")
	optimize_parser.add_argument("--ground-truth", nargs="+", type=Path, required=True, help="Rule-line ground-truth images.")
	optimize_parser.add_argument("--synthetic", nargs="+", type=Path, help="Synthetic inputs, one per ground truth.")
	optimize_parser.add_argument("--text-only", nargs="+", type=Path, help="Text ground truth used to build the synthetic inputs.")
	optimize_parser.add_argument("--iterations", type=int, help="Cooling steps (default from config).")
	optimize_parser.add_argument("--seed", type=int, help="Random seed.")
	optimize_parser.add_argument("--save-model", type=Path, help="Store the subspace trained with the optimum.")
	_add_detector_arguments(optimize_parser)

	return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> None:
	"""Main entry point for the rule-line removal tool."""
	args = parse_args(argv)
	cfg = load_config(args.root)
	configure_logging(cfg, args.debug)
	logger.debug(f"설정: {config_summary(cfg)}")

	logger.info("설정 검증 중...")
	is_valid, errors, warnings = ConfigValidator(cfg).validate_all()
	for warning in warnings:
		logger.warning(f"설정 경고: {warning}")
	if args.check_config:
		print_validation_report(is_valid, errors, warnings)
		sys.exit(0 if is_valid else 1)
	if not is_valid:
		for error in errors:
			logger.error(f"설정 오류: {error}")
		logger.error("설정 검증 실패로 프로그램을 종료합니다")
		sys.exit(1)

	if args.command is None:
		logger.error("명령을 지정하세요: filter 또는 optimize")
		sys.exit(2)

	try:
		if args.command == "filter":
			status = run_filter(args, cfg)
		else:
			status = run_optimize(args, cfg)
	except KeyboardInterrupt:
		logger.info("Processing interrupted by user")
		sys.exit(0)
	except MemoryError:
		logger.error("메모리 부족으로 처리를 중단했습니다")
		sys.exit(1)
	except RuleLineError as e:
		logger.error(f"처리 실패: {e}")
		sys.exit(1)

	if status:
		sys.exit(status)


if __name__ == "__main__":
	main()
