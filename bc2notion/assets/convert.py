"""Image conversions needed before an upload (Notion rejects AVIF)."""

from __future__ import annotations

import io
import os

from bc2notion.models.asset import DownloadedAsset
from bc2notion.utils.logs import log_message


def is_avif(asset: DownloadedAsset) -> bool:
    if (asset.mime_type or "").lower().startswith("image/avif"):
        return True
    if asset.filename.lower().endswith(".avif"):
        return True
    # ISO-BMFF brand at offset 4
    return asset.content[4:12] in (b"ftypavif", b"ftypavis")


def convert_avif_to_png(asset: DownloadedAsset) -> DownloadedAsset:
    """
    Return a PNG copy of an AVIF asset, or ``asset`` unchanged when it is
    not AVIF or cannot be decoded.
    """
    if not is_avif(asset):
        return asset
    # Importação tardia do PIL: só é necessário quando há AVIF
    from PIL import Image, UnidentifiedImageError

    try:
        with Image.open(io.BytesIO(asset.content)) as img:
            out = io.BytesIO()
            if img.mode not in ("RGB", "RGBA", "L", "LA", "P"):
                img = img.convert("RGBA")
            img.save(out, format="PNG")
    except (UnidentifiedImageError, OSError, ValueError) as e:
        log_message(f"[Convert] Could not convert AVIF {asset.filename}: {e}", "WARNING")
        return asset

    stem, _ = os.path.splitext(asset.filename)
    converted = asset.model_copy(
        update={"content": out.getvalue(), "mime_type": "image/png", "filename": f"{stem or 'image'}.png"}
    )
    log_message(f"[Convert] AVIF → PNG {asset.filename} ({asset.size} → {converted.size} bytes)", "DEBUG")
    return converted
