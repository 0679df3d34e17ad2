import numpy as np
import pytest

pytest.importorskip("cv2")

from enrollment.recognition.embed_arcface import ArcFaceEmbedder
from enrollment.recognition.extractor import ArcFaceExtractor, FaceExtractor
from enrollment.recognition.face_retina import FaceDetection, RetinaFaceDetector, crop_to_bbox


def test_align_to_112_shape():
    image = np.zeros((480, 640, 3), dtype=np.uint8)
    bbox = (120.0, 160.0, 400.0, 440.0)
    aligned = RetinaFaceDetector.align_to_112(image, None, bbox)
    assert aligned.shape == (112, 112, 3)


def test_align_to_112_with_landmarks():
    image = np.full((240, 240, 3), 128, dtype=np.uint8)
    landmarks = np.array([[80, 100], [160, 100], [120, 140], [90, 180], [150, 180]], dtype=np.float32)
    aligned = RetinaFaceDetector.align_to_112(image, landmarks, (40.0, 40.0, 200.0, 220.0))
    assert aligned.shape == (112, 112, 3)


def test_crop_to_bbox_degenerate_returns_copy():
    image = np.ones((10, 10, 3), dtype=np.uint8)
    crop = crop_to_bbox(image, (5.0, 5.0, 5.0, 5.0))
    assert crop.shape == image.shape
    assert crop is not image


class _FakeDetector:
    def __init__(self, detections):
        self.detections = detections
        self.aligned_with = None

    def detect(self, image):
        return list(self.detections)

    def align_to_112(self, image, landmarks, bbox):
        self.aligned_with = bbox
        return np.zeros((112, 112, 3), dtype=np.uint8)


class _FakeEmbedder:
    def embed(self, aligned):
        return np.array([3.0, 4.0], dtype=np.float32)


def test_extractor_uses_highest_scoring_face():
    detector = _FakeDetector(
        [
            FaceDetection(bbox=(0.0, 0.0, 80.0, 80.0), score=0.7),
            FaceDetection(bbox=(10.0, 10.0, 90.0, 90.0), score=0.95),
        ]
    )
    extractor = ArcFaceExtractor(detector, _FakeEmbedder(), min_face_px=40)

    face = extractor.extract(np.zeros((100, 100, 3), dtype=np.uint8))

    assert face is not None
    assert detector.aligned_with == (10.0, 10.0, 90.0, 90.0)
    assert face.crop.shape == (112, 112, 3)
    assert face.embedding.dtype == np.float32


def test_extractor_returns_none_without_usable_face():
    detector = _FakeDetector([FaceDetection(bbox=(0.0, 0.0, 20.0, 20.0), score=0.99)])
    extractor = ArcFaceExtractor(detector, _FakeEmbedder(), min_face_px=40)

    assert extractor.extract(np.zeros((100, 100, 3), dtype=np.uint8)) is None
    assert ArcFaceExtractor(_FakeDetector([]), _FakeEmbedder()).extract(np.zeros((5, 5, 3), np.uint8)) is None


class _FakeArcFace:
    def __init__(self, feat):
        self.feat = feat
        self.shapes = []

    def get_feat(self, image):
        self.shapes.append(image.shape)
        return self.feat


def _embedder(feat):
    embedder = ArcFaceEmbedder.__new__(ArcFaceEmbedder)
    embedder.model = _FakeArcFace(feat)
    return embedder


def test_embedder_resizes_and_normalizes():
    embedder = _embedder(np.array([[3.0, 4.0]], dtype=np.float32))

    embedding = embedder.embed(np.zeros((64, 80, 3), dtype=np.uint8))

    assert embedder.model.shapes == [(112, 112, 3)]
    np.testing.assert_allclose(embedding, [0.6, 0.8], rtol=1e-6)


def test_embedder_rejects_zero_output():
    embedder = _embedder(np.zeros((1, 4), dtype=np.float32))

    with pytest.raises(ValueError):
        embedder.embed(np.zeros((112, 112, 3), dtype=np.uint8))


def test_extractor_interface_cannot_be_instantiated():
    with pytest.raises(TypeError):
        FaceExtractor()
