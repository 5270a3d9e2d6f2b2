"""
Configuration loading and validation for the rule-line removal tools.
Built-in defaults apply wherever config.py is silent.
"""

from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
import importlib.util
import logging

import psutil

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

CONFIG_SECTIONS = ("IMAGE_CONFIG", "DETECTOR_CONFIG", "OPTIMIZER_CONFIG", "PERFORMANCE_CONFIG", "LOGGING_CONFIG")

REQUIRED_MODULES = (("numpy", "배열 연산"), ("cv2", "이미지 입출력"), ("PIL", "GIF 입출력"), ("psutil", "메모리 관리"))
OPTIONAL_MODULES = (("fitz", "PDF 입력"), ("streamlit", "웹 UI"))


class _DefaultConfig:
    ROOT_DIR = Path.cwd()
    OUTPUT_SUBDIR = "filtered-files"
    PREFERENCES_FILE = "filters.pref"
    IMAGE_CONFIG = {"gray_threshold": 128, "pdf_dpi": 300, "max_image_dimension": 12000}
    DETECTOR_CONFIG = {"default_detector": "directional-profile"}
    OPTIMIZER_CONFIG = {"iterations": 45, "initial_temperature": 100.0, "cooling_exponent": 2.0, "seed": None}
    PERFORMANCE_CONFIG = {"memory_limit_mb": 2048, "max_workers": 1, "parallel_processing": False}
    LOGGING_CONFIG = {"level": "INFO", "format": "%(asctime)s %(levelname)s %(name)s %(message)s"}


def _load_user_config(root_dir: Path):
    cfg_path = root_dir / "config.py"
    if cfg_path.exists():
        spec = importlib.util.spec_from_file_location("user_config", str(cfg_path))
        if spec and spec.loader:
            mod = importlib.util.module_from_spec(spec)
            spec.loader.exec_module(mod)
            return mod
    return None


def load_config(root_dir: Optional[Path] = None):
    """Defaults overridden section by section by ``<root>/config.py``.

    A user section only needs the keys it changes.
    """
    root_dir = Path(root_dir) if root_dir is not None else _DefaultConfig.ROOT_DIR

    class _Cfg(_DefaultConfig):
        pass

    _Cfg.ROOT_DIR = root_dir
    for section in CONFIG_SECTIONS:
        setattr(_Cfg, section, dict(getattr(_DefaultConfig, section)))

    try:
        user_cfg = _load_user_config(root_dir)
    except Exception as e:
        raise ConfigurationError(f"config.py를 불러올 수 없습니다: {e}", "config.py") from e

    if user_cfg is not None:
        logger.debug(f"Using user configuration {root_dir / 'config.py'}")
        for section in CONFIG_SECTIONS:
            overrides = getattr(user_cfg, section, None)
            if overrides is None:
                continue
            if not isinstance(overrides, dict):
                raise ConfigurationError("설정 섹션은 dict여야 합니다", section)
            getattr(_Cfg, section).update(overrides)
        for name in ("OUTPUT_SUBDIR", "PREFERENCES_FILE"):
            if hasattr(user_cfg, name):
                setattr(_Cfg, name, getattr(user_cfg, name))
    return _Cfg


class ConfigValidator:
    """Checks a loaded configuration; each check returns a list of messages."""

    def __init__(self, cfg=None):
        self.cfg = cfg if cfg is not None else load_config()

    def validate_paths(self) -> List[str]:
        """The project root must exist and the output sub-directory needs a name."""
        errors = []
        root_dir = Path(self.cfg.ROOT_DIR)
        if not root_dir.is_dir():
            errors.append(f"프로젝트 루트 디렉토리가 없습니다: {root_dir}")
        if not str(self.cfg.OUTPUT_SUBDIR).strip():
            errors.append("출력 하위 디렉토리 이름이 비어 있습니다")
        return errors

    def validate_image_config(self) -> List[str]:
        errors = []
        image_config = self.cfg.IMAGE_CONFIG

        if not (0 < image_config["gray_threshold"] < 256):
            errors.append(f"이진화 임계값이 범위를 벗어났습니다: {image_config['gray_threshold']} (1-255)")

        if not (72 <= image_config["pdf_dpi"] <= 1200):
            errors.append(f"DPI 값이 범위를 벗어났습니다: {image_config['pdf_dpi']} (72-1200)")

        if image_config["max_image_dimension"] < 16:
            errors.append(f"최대 이미지 크기가 잘못되었습니다: {image_config['max_image_dimension']} (최소 16)")

        return errors

    def validate_detector_config(self) -> List[str]:
        from .filters import DETECTORS

        errors = []
        tag = self.cfg.DETECTOR_CONFIG.get("default_detector")
        if tag not in DETECTORS:
            errors.append(f"알 수 없는 기본 검출기: {tag} ({', '.join(DETECTORS)})")
        return errors

    def validate_optimizer_config(self) -> List[str]:
        errors = []
        optimizer_config = self.cfg.OPTIMIZER_CONFIG

        if optimizer_config["iterations"] < 1:
            errors.append(f"반복 횟수가 잘못되었습니다: {optimizer_config['iterations']} (최소 1)")

        if optimizer_config["initial_temperature"] <= 0:
            errors.append(f"초기 온도는 양수여야 합니다: {optimizer_config['initial_temperature']}")

        if optimizer_config["cooling_exponent"] <= 0:
            errors.append(f"냉각 지수는 양수여야 합니다: {optimizer_config['cooling_exponent']}")

        seed = optimizer_config.get("seed")
        if seed is not None and not isinstance(seed, int):
            errors.append(f"난수 시드는 정수여야 합니다: {seed}")

        return errors

    def validate_performance_config(self) -> List[str]:
        errors = []
        performance_config = self.cfg.PERFORMANCE_CONFIG

        if performance_config["memory_limit_mb"] < 256:
            errors.append(f"메모리 제한이 너무 낮습니다: {performance_config['memory_limit_mb']}MB (최소 256MB)")

        if performance_config["max_workers"] < 1:
            errors.append(f"최대 워커 수가 잘못되었습니다: {performance_config['max_workers']} (최소 1)")

        return errors

    def validate_logging_config(self) -> List[str]:
        errors = []
        level = self.cfg.LOGGING_CONFIG.get("level")
        if not isinstance(logging.getLevelName(str(level)), int):
            errors.append(f"알 수 없는 로그 레벨: {level}")
        return errors

    @staticmethod
    def validate_dependencies() -> List[str]:
        """Missing core libraries are errors; missing PDF/UI libraries only warn."""
        errors = []
        for module_name, purpose in REQUIRED_MODULES:
            if importlib.util.find_spec(module_name) is None:
                errors.append(f"필수 패키지가 없습니다: {module_name} ({purpose})")
        for module_name, purpose in OPTIONAL_MODULES:
            if importlib.util.find_spec(module_name) is None:
                logger.warning(f"{purpose} 기능을 쓰려면 {module_name} 패키지가 필요합니다")
        return errors

    def validate_system_resources(self) -> List[str]:
        """Warn when free RAM cannot hold the configured memory limit or disk is low."""
        warnings = []
        gb = 1024 ** 3

        available_mb = psutil.virtual_memory().available / (1024 * 1024)
        limit_mb = self.cfg.PERFORMANCE_CONFIG.get("memory_limit_mb", 0)
        if available_mb < limit_mb:
            warnings.append(f"사용 가능한 메모리({available_mb:.0f}MB)가 설정된 제한({limit_mb}MB)보다 적습니다")

        root_dir = Path(self.cfg.ROOT_DIR)
        disk_root = root_dir if root_dir.exists() else Path(root_dir.anchor or "/")
        free_gb = psutil.disk_usage(str(disk_root)).free / gb
        if free_gb < 1:
            warnings.append(f"출력 디스크 여유 공간이 부족합니다: {free_gb:.1f}GB")
        return warnings

    def validate_all(self) -> Tuple[bool, List[str], List[str]]:
        """Run every check.

        Returns:
            ``(is_valid, errors, warnings)``
        """
        errors = self.validate_paths()
        for check in (
            self.validate_image_config,
            self.validate_detector_config,
            self.validate_optimizer_config,
            self.validate_performance_config,
            self.validate_logging_config,
        ):
            try:
                errors.extend(check())
            except KeyError as e:
                errors.append(f"설정 키가 없습니다: {e}")
        errors.extend(self.validate_dependencies())
        warnings = self.validate_system_resources()

        if errors:
            logger.error(f"설정 오류 {len(errors)}건")
        else:
            logger.debug("설정 검증 통과")
        return not errors, errors, warnings


def print_validation_report(is_valid: bool, errors: List[str], warnings: List[str]) -> None:
    """Print the ``--check-config`` report to stdout."""
    rule = "-" * 50
    print(rule)
    print("괘선 제거 설정 검증")
    print(rule)
    print("결과: 정상" if is_valid else f"결과: 오류 {len(errors)}건")
    for number, error in enumerate(errors, 1):
        print(f"  [오류 {number}] {error}")
    for number, warning in enumerate(warnings, 1):
        print(f"  [경고 {number}] {warning}")
    print(rule)


def config_summary(cfg) -> Dict[str, Any]:
    return {section: dict(getattr(cfg, section)) for section in CONFIG_SECTIONS}
