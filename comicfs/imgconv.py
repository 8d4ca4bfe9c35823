"""Image conversion for dual-extension lookups.

A lookup for ``page.webp.png`` inside an archive that only holds
``page.webp`` is served by decoding the WEBP entry and encoding it as PNG.
The registry maps source extensions to decoders and destination extensions
to encoders; both maps are filled once at startup and only read afterwards.
"""

import logging
from io import BytesIO
from typing import Callable, Dict, Iterable, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from .exceptions import DecodeError, EncodeError, UnsupportedConversionError

log = logging.getLogger(__name__)

Decoder = Callable[[bytes], Image.Image]
Encoder = Callable[[Image.Image], bytes]

# Extension -> Pillow format name
PILLOW_FORMATS = {
    ".webp": "WEBP",
    ".png": "PNG",
    ".jpg": "JPEG",
    ".jpeg": "JPEG",
    ".gif": "GIF",
    ".bmp": "BMP",
    ".tif": "TIFF",
    ".tiff": "TIFF",
}

DEFAULT_DECODE_EXTENSIONS = (".webp", ".png", ".jpg", ".jpeg", ".gif")
DEFAULT_ENCODE_EXTENSIONS = (".png", ".jpg", ".jpeg")


def normalize_extension(ext: str) -> str:
    """Lower-case an extension and make sure it starts with a dot."""
    ext = ext.lower()
    if not ext.startswith("."):
        ext = "." + ext
    return ext


def split_extension(name: str) -> Tuple[str, str]:
    """Split off the last extension of a name.

    Unlike os.path.splitext, a leading dot counts as an extension separator,
    so ``".webp"`` splits into ``("", ".webp")``.

    Returns:
        (stem, extension) where extension is "" if there is none
    """
    idx = name.rfind(".")
    if idx < 0:
        return name, ""
    return name[:idx], name[idx:]


def pillow_decoder(fmt: str) -> Decoder:
    """Build a decoder that only accepts images in the given Pillow format."""
    def decode(data: bytes) -> Image.Image:
        image = Image.open(BytesIO(data), formats=[fmt])
        image.load()
        return image
    return decode


def pillow_encoder(fmt: str, **save_options) -> Encoder:
    """Build an encoder that writes images in the given Pillow format."""
    def encode(image: Image.Image) -> bytes:
        # JPEG has no alpha channel or palette
        if fmt == "JPEG" and image.mode not in ("RGB", "L", "CMYK"):
            image = image.convert("RGB")
        buffer = BytesIO()
        image.save(buffer, format=fmt, **save_options)
        return buffer.getvalue()
    return encode


class Converter:
    """A conversion bound to one (source, destination) extension pair."""

    def __init__(self, registry: 'ConversionRegistry', src_ext: str, dst_ext: str):
        self.registry = registry
        self.src_ext = src_ext
        self.dst_ext = dst_ext

    def convert(self, data: bytes) -> bytes:
        return self.registry.convert(data, self.src_ext, self.dst_ext)

    def __repr__(self) -> str:
        return f"Converter('{self.src_ext}' -> '{self.dst_ext}')"


class ConversionRegistry:
    """Registered image decoders and encoders, keyed by extension."""

    def __init__(self):
        self._decoders: Dict[str, Decoder] = {}
        self._encoders: Dict[str, Encoder] = {}

    @classmethod
    def with_defaults(
        cls,
        decode: Iterable[str] = DEFAULT_DECODE_EXTENSIONS,
        encode: Iterable[str] = DEFAULT_ENCODE_EXTENSIONS,
        jpeg_quality: int = 90,
    ) -> 'ConversionRegistry':
        """Create a registry with Pillow codecs for the given extensions.

        Args:
            decode: Source extensions to register decoders for
            encode: Destination extensions to register encoders for
            jpeg_quality: Quality used when encoding JPEG

        Raises:
            ValueError: If an extension has no known Pillow format
        """
        registry = cls()
        for ext in decode:
            registry.register_decoder(ext, pillow_decoder(_pillow_format(ext)))
        for ext in encode:
            fmt = _pillow_format(ext)
            options = {"quality": jpeg_quality} if fmt == "JPEG" else {}
            registry.register_encoder(ext, pillow_encoder(fmt, **options))
        return registry

    def register_decoder(self, ext: str, decoder: Decoder) -> None:
        self._decoders[normalize_extension(ext)] = decoder

    def register_encoder(self, ext: str, encoder: Encoder) -> None:
        self._encoders[normalize_extension(ext)] = encoder

    def can_decode(self, ext: str) -> bool:
        return ext.lower() in self._decoders

    def can_encode(self, ext: str) -> bool:
        return ext.lower() in self._encoders

    def detect(self, name: str) -> Optional[Tuple[str, Converter]]:
        """Detect a dual-extension name like ``page.webp.png``.

        Args:
            name: Requested file name

        Returns:
            (source name, converter), e.g. ("page.webp", webp->png), or None
            if the name does not end in a decodable + encodable pair
        """
        source_name, dst_ext = split_extension(name)
        if not dst_ext:
            return None

        _, src_ext = split_extension(source_name)
        if not src_ext:
            return None

        if not self.can_decode(src_ext) or not self.can_encode(dst_ext):
            return None

        # page.png.png stays a literal name
        if src_ext.lower() == dst_ext.lower():
            return None

        return source_name, Converter(self, src_ext.lower(), dst_ext.lower())

    def convert(self, data: bytes, src_ext: str, dst_ext: str) -> bytes:
        """Convert image bytes from one format to another.

        Raises:
            UnsupportedConversionError: No codec for src_ext or dst_ext
            DecodeError: data is not a valid src_ext image
            EncodeError: Encoding to dst_ext failed
        """
        src_ext = src_ext.lower()
        dst_ext = dst_ext.lower()
        if src_ext == dst_ext:
            return data

        decoder = self._decoders.get(src_ext)
        if decoder is None:
            raise UnsupportedConversionError(f"No such decoder: {src_ext}")

        encoder = self._encoders.get(dst_ext)
        if encoder is None:
            raise UnsupportedConversionError(f"No such encoder: {dst_ext}")

        try:
            image = decoder(data)
        except (UnidentifiedImageError, Image.DecompressionBombError,
                OSError, SyntaxError, ValueError) as e:
            raise DecodeError(f"Cannot decode {src_ext} image: {e}") from e

        try:
            converted = encoder(image)
        except (OSError, KeyError, ValueError) as e:
            raise EncodeError(f"Cannot encode {dst_ext} image: {e}") from e

        log.debug(f"Converted {src_ext} -> {dst_ext}: {len(data)} -> {len(converted)} bytes")
        return converted


def _pillow_format(ext: str) -> str:
    fmt = PILLOW_FORMATS.get(normalize_extension(ext))
    if fmt is None:
        raise ValueError(f"No image format known for extension: {ext}")
    return fmt
