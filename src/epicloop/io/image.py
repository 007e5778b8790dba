from __future__ import annotations

from dataclasses import dataclass
from io import BytesIO

import numpy as np

from ..errors import DecodeFailure


_MIME_TO_FORMAT: dict[str, str] = {
    "image/png": "PNG",
    "image/jpeg": "JPEG",
    "image/jpg": "JPEG",
    "image/webp": "WEBP",
}

_MIME_TO_CV2_EXT: dict[str, str] = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/jpg": ".jpg",
    "image/webp": ".webp",
}

# Memory-tier cost of a decoded frame, matching an RGBA texture upload.
BYTES_PER_PIXEL = 4


@dataclass(frozen=True, eq=False)
class DecodedImage:
    """A decoded frame image: RGB(A) uint8 pixels of shape (H, W, C)."""

    pixels: np.ndarray

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def channels(self) -> int:
        return int(self.pixels.shape[2]) if self.pixels.ndim == 3 else 1

    @property
    def byte_size(self) -> int:
        return self.width * self.height * BYTES_PER_PIXEL


def _normalize_mime_type(mime_type: str | None) -> str:
    mime = str(mime_type or "image/png").strip().lower()
    if mime not in _MIME_TO_FORMAT:
        raise ValueError(f"Unsupported mime_type {mime!r}. Supported: {sorted(_MIME_TO_FORMAT.keys())}")
    return mime


def _decode_with_cv2(data: bytes) -> np.ndarray | None:
    import cv2  # type: ignore

    buf = np.frombuffer(data, dtype=np.uint8)
    img = cv2.imdecode(buf, cv2.IMREAD_UNCHANGED)
    if img is None:
        return None
    # OpenCV hands back BGR/BGRA data for color images.
    if img.ndim == 3 and img.shape[2] == 3:
        img = cv2.cvtColor(img, cv2.COLOR_BGR2RGB)
    elif img.ndim == 3 and img.shape[2] == 4:
        img = cv2.cvtColor(img, cv2.COLOR_BGRA2RGBA)
    return np.ascontiguousarray(img, dtype=np.uint8)


def _decode_with_pillow(data: bytes) -> np.ndarray:
    from PIL import Image  # type: ignore

    with Image.open(BytesIO(data)) as img:
        img.load()
        mode = img.mode
        if mode not in {"L", "RGB", "RGBA"}:
            img = img.convert("RGBA" if "A" in mode else "RGB")
        return np.ascontiguousarray(np.asarray(img), dtype=np.uint8)


def decode_image_payload(data: bytes, *, key: str = "") -> DecodedImage:
    """Decode JPEG/PNG/WebP bytes into pixels.

    Uses OpenCV when it is installed and falls back to Pillow. Anything neither
    decoder accepts raises `DecodeFailure` so callers can tell a bad payload
    apart from a failed transfer.
    """
    if not data:
        raise DecodeFailure(key, "empty payload")

    pixels: np.ndarray | None = None
    try:
        pixels = _decode_with_cv2(bytes(data))
    except Exception:
        pixels = None

    if pixels is None:
        try:
            pixels = _decode_with_pillow(bytes(data))
        except Exception as exc:
            raise DecodeFailure(key, str(exc) or type(exc).__name__) from exc

    if pixels.ndim not in (2, 3) or pixels.shape[0] <= 0 or pixels.shape[1] <= 0:
        raise DecodeFailure(key, f"unexpected image shape {pixels.shape}")
    return DecodedImage(pixels=pixels)


def decode_image_resource(data: bytes, key: str) -> tuple[DecodedImage, int]:
    image = decode_image_payload(data, key=key)
    return image, image.byte_size


def _encode_with_cv2(arr_u8: np.ndarray, mime_type: str) -> bytes:
    import cv2  # type: ignore

    img = arr_u8
    if arr_u8.ndim == 3 and arr_u8.shape[2] == 3:
        img = cv2.cvtColor(arr_u8, cv2.COLOR_RGB2BGR)
    elif arr_u8.ndim == 3 and arr_u8.shape[2] == 4:
        img = cv2.cvtColor(arr_u8, cv2.COLOR_RGBA2BGRA)

    ok, enc = cv2.imencode(_MIME_TO_CV2_EXT[mime_type], img)
    if not ok:
        raise ValueError(f"cv2.imencode failed for mime_type={mime_type!r}")
    return bytes(enc.tobytes())


def _encode_with_pillow(arr_u8: np.ndarray, mime_type: str) -> bytes:
    from PIL import Image  # type: ignore

    out = arr_u8
    if arr_u8.ndim == 3 and arr_u8.shape[2] == 1:
        out = arr_u8[:, :, 0]
    img = Image.fromarray(out)
    if mime_type in {"image/jpeg", "image/jpg"} and img.mode == "RGBA":
        img = img.convert("RGB")
    buf = BytesIO()
    img.save(buf, format=_MIME_TO_FORMAT[mime_type])
    return bytes(buf.getvalue())


def encode_image(image: DecodedImage, *, mime_type: str | None = "image/png") -> bytes:
    """Re-encode a decoded frame, for serving it to a presentation layer."""
    mime = _normalize_mime_type(mime_type)
    arr_u8 = np.ascontiguousarray(image.pixels, dtype=np.uint8)
    try:
        return _encode_with_cv2(arr_u8, mime)
    except Exception:
        try:
            return _encode_with_pillow(arr_u8, mime)
        except Exception as exc:
            raise RuntimeError(
                "Failed to encode image. Install OpenCV (`opencv-python`) or Pillow (`Pillow`)."
            ) from exc
