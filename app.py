import io
from typing import List, Optional

import cv2
import numpy as np
import streamlit as st
from PIL import Image

from rulier.annealing import SimulatedAnnealing
from rulier.config_validator import ConfigValidator, load_config
from rulier.energy import evaluate, synthesize
from rulier.exceptions import RuleLineError
from rulier.filters import REGISTRY, Detector, detector_by_name
from rulier.image_utils import to_binary, to_image
from rulier.memory_manager import MemoryManager
from rulier.parameters import INTEGER
from rulier.pdf_processor import PDFProcessor
from rulier.raster import count_foreground
from rulier.task import Task

CFG = load_config()
IMAGE_TYPES = ["png", "bmp", "jpg", "jpeg", "tif", "tiff", "gif"]


def decode_upload(data: bytes) -> np.ndarray:
	"""Uploaded image bytes as 8-bit gray."""
	gray = cv2.imdecode(np.frombuffer(data, dtype=np.uint8), cv2.IMREAD_GRAYSCALE)
	if gray is None:
		# GIF and a few TIFF variants only open through Pillow
		with Image.open(io.BytesIO(data)) as img:
			gray = np.array(img.convert("L"))
	return gray


def uploads_to_rasters(files, threshold: int) -> List[np.ndarray]:
	return [to_binary(decode_upload(f.getvalue()), threshold, f.name) for f in files]


def encode_png(raster: np.ndarray) -> bytes:
	ok, buf = cv2.imencode(".png", to_image(raster))
	if not ok:
		raise RuleLineError("PNG 인코딩 실패", "IMAGE_WRITE_FAILED")
	return buf.tobytes()


def get_detector(name: str) -> Detector:
	"""Detectors live in the session so trained models survive reruns."""
	detectors = st.session_state.setdefault("detectors", {})
	if name not in detectors:
		detectors[name] = detector_by_name(name)
	return detectors[name]


def parameter_widgets(detector: Detector) -> None:
	for parameter in detector.parameters:
		key = f"{detector.tag}:{parameter.name}"
		if parameter.kind == INTEGER:
			value = st.slider(
				parameter.name,
				int(parameter.minimum),
				int(parameter.maximum),
				int(parameter.value if parameter.value is not None else parameter.minimum),
				step=1,
				help=parameter.description,
				key=key,
			)
		else:
			value = st.number_input(
				parameter.name,
				min_value=float(parameter.minimum),
				max_value=float(parameter.maximum),
				value=float(parameter.value if parameter.value is not None else parameter.minimum),
				format="%.6f",
				help=parameter.description,
				key=key,
			)
		detector.parameters.set(parameter.name, value)


st.set_page_config(
    page_title="문서 괘선 제거",
    layout="wide",
    page_icon="📝",
    menu_items={
        'Get Help': None,
        'Report a bug': None,
        'About': "### 괘선 제거\n\n스캔한 흑백 문서에서 괘선을 지우고\n글자만 남기는 도구"
    }
)

st.title("📝 문서 괘선 제거")
st.caption("방향성 로컬 프로파일 • 제로 트라이어드 • 중심 모멘트 부분공간")

is_valid, config_errors, config_warnings = ConfigValidator(CFG).validate_all()
for message in config_errors:
	st.error(message)
for message in config_warnings:
	st.warning(message)
if not is_valid:
	st.stop()

threshold = CFG.IMAGE_CONFIG["gray_threshold"]
memory_manager = MemoryManager(CFG.PERFORMANCE_CONFIG["memory_limit_mb"])

with st.sidebar:
	st.title("⚙️ 설정")

	st.markdown("### 📄 입력 파일")
	upload = st.file_uploader("파일 선택", type=IMAGE_TYPES + ["pdf"], help="흑백으로 스캔한 문서 이미지 또는 PDF")

	page_index = 0
	dpi = CFG.IMAGE_CONFIG["pdf_dpi"]
	if upload is not None and upload.name.lower().endswith(".pdf"):
		try:
			total = PDFProcessor.page_count(upload.getvalue())
		except (RuntimeError, ValueError):
			total = 0
			st.error("PDF 파일을 읽을 수 없습니다")
		if total > 1:
			page_index = st.selectbox("페이지 선택", range(total), format_func=lambda x: f"페이지 {x + 1}")
		dpi = st.slider("렌더링 DPI", 150, 600, int(dpi), step=50, help="높을수록 선명하지만 메모리 사용량 증가")

	st.divider()

	st.markdown("### 🔍 검출기")
	names = [kind.name for kind in REGISTRY.values()]
	default_name = REGISTRY[CFG.DETECTOR_CONFIG["default_detector"]].name
	detector = get_detector(st.selectbox("알고리즘", names, index=names.index(default_name)))
	st.caption(detector.description)

	with st.expander("🔧 파라미터", expanded=True):
		parameter_widgets(detector)

	if detector.uses_model:
		st.markdown("### 🧠 모델 학습")
		training = st.file_uploader("괘선 정답 이미지", type=IMAGE_TYPES, accept_multiple_files=True, key="train")
		if st.button("모델 재구성", disabled=not training):
			try:
				added = detector.rebuild_model(uploads_to_rasters(training, threshold))
				st.success(f"✅ 부분공간 벡터 {added}개")
			except RuleLineError as e:
				st.error(e.message)
		st.caption("모델 준비됨" if detector.is_ready() else "⚠️ 모델이 비어 있습니다")


source: Optional[np.ndarray] = None
if upload is None:
	st.info("👈 사이드바에서 문서를 업로드하세요")
else:
	try:
		if upload.name.lower().endswith(".pdf"):
			gray = PDFProcessor(memory_manager).render_page(upload.getvalue(), page_index, dpi)
		else:
			gray = decode_upload(upload.getvalue())
		source = to_binary(gray, threshold, upload.name)
		memory_manager.check_raster_budget(source.shape, CFG.IMAGE_CONFIG["max_image_dimension"])
	except RuleLineError as e:
		st.error(e.message)
		source = None

if source is not None:
	result = None
	try:
		with st.spinner("괘선 제거 중..."):
			with memory_manager.memory_guard("괘선 제거"):
				result = detector.apply(source)
	except RuleLineError as e:
		st.error(e.message)
	except MemoryError:
		st.error("메모리가 부족합니다. DPI를 낮춰 보세요")

	cols = st.columns(2, gap="small")
	with cols[0]:
		st.markdown("**📄 원본**")
		st.image(to_image(source), use_column_width=True)
		st.caption(f"{source.shape[1]}x{source.shape[0]} · 잉크 {count_foreground(source)}px")
	with cols[1]:
		st.markdown("**🧹 괘선 제거**")
		if result is None:
			st.warning("결과가 없습니다 (모델을 먼저 학습하세요)")
		else:
			st.image(to_image(result), use_column_width=True)
			removed = count_foreground(source) - count_foreground(result)
			st.caption(f"제거된 픽셀 {removed}px")
			stem = upload.name.rsplit(".", 1)[0]
			st.download_button(
				label="📥 PNG 다운로드",
				data=encode_png(result),
				file_name=f"(filtered) {stem}.png",
				mime="image/png",
			)

st.markdown("---")
with st.expander("🎯 파라미터 자동 최적화", expanded=False):
	st.markdown("괘선 정답과 글자만 있는 이미지를 같은 순서로 올리면 두 이미지를 합성해 F1이 가장 높은 파라미터를 찾습니다.")
	opt_cols = st.columns(2)
	with opt_cols[0]:
		gt_files = st.file_uploader("괘선 정답", type=IMAGE_TYPES, accept_multiple_files=True, key="opt_gt")
	with opt_cols[1]:
		text_files = st.file_uploader("글자만", type=IMAGE_TYPES, accept_multiple_files=True, key="opt_text")
	iterations = st.slider("반복 횟수", 1, 200, int(CFG.OPTIMIZER_CONFIG["iterations"]))

	if st.button("최적화 시작", disabled=not gt_files or not text_files):
		progress = st.progress(0)
		log_area = st.empty()
		task = Task("optimize")
		task.add_listener(lambda value, message: progress.progress(value) if message is None else log_area.text(message))
		try:
			ground_truths = uploads_to_rasters(gt_files, threshold)
			texts = uploads_to_rasters(text_files, threshold)
			if len(ground_truths) != len(texts):
				raise RuleLineError("정답 이미지와 글자 이미지 수가 다릅니다", "DATASET_MISMATCH")
			synthetics = [synthesize(gt, text) for gt, text in zip(ground_truths, texts)]
			sa = SimulatedAnnealing(
				detector,
				ground_truths,
				synthetics,
				time=iterations,
				initial_temperature=CFG.OPTIMIZER_CONFIG["initial_temperature"],
				cooling_exponent=CFG.OPTIMIZER_CONFIG["cooling_exponent"],
				seed=CFG.OPTIMIZER_CONFIG["seed"],
			)
			sa.start(task)
			best = sa.optimum_parameters()
			detector.parameters.update(best.values())
			for name in best.names():
				st.session_state.pop(f"{detector.tag}:{name}", None)
			if detector.uses_model:
				detector.rebuild_model(ground_truths)
			st.success(f"✅ {sa.optimum_energy()}")
			st.code(str(best))
			if ground_truths:
				check = evaluate(ground_truths[0], synthetics[0], detector.apply(synthetics[0]), texts[0])
				st.caption(f"첫 번째 이미지 재평가: {check}")
		except (RuleLineError, ValueError) as e:
			st.error(getattr(e, "message", str(e)))
		except MemoryError:
			st.error("메모리가 부족합니다")
