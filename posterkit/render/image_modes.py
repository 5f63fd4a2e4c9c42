from __future__ import annotations

from PIL import Image, ImageDraw


def _crop_to_ratio(image: Image.Image, target_ratio: float) -> Image.Image:
    width, height = image.size
    if height == 0:
        return image
    ratio = width / float(height)
    if abs(ratio - target_ratio) < 0.0001:
        return image

    if ratio > target_ratio:
        new_width = max(1, int(round(height * target_ratio)))
        left = (width - new_width) // 2
        box = (left, 0, left + new_width, height)
    else:
        new_height = max(1, int(round(width / target_ratio)))
        top = (height - new_height) // 2
        box = (0, top, width, top + new_height)
    return image.crop(box)


def cover_fit(image: Image.Image, width: int, height: int) -> Image.Image:
    """Resize and center-crop ``image`` so it exactly fills ``width`` x ``height``."""
    width = max(1, int(width))
    height = max(1, int(height))
    cropped = _crop_to_ratio(image, width / float(height))
    if cropped.size == (width, height):
        return cropped.copy()
    return cropped.resize((width, height), Image.Resampling.LANCZOS)


def rounded_mask(size: tuple[int, int], radius: int, *, supersample: int = 4) -> Image.Image:
    """Alpha mask for a rounded rectangle; a radius of half the short side gives a circle/pill."""
    width, height = size
    radius = max(0, min(int(radius), min(width, height) // 2))
    big = Image.new("L", (width * supersample, height * supersample), 0)
    draw = ImageDraw.Draw(big)
    box = (0, 0, width * supersample - 1, height * supersample - 1)
    if radius * 2 >= min(width, height):
        if width == height:
            draw.ellipse(box, fill=255)
        else:
            draw.rounded_rectangle(box, radius=min(width, height) * supersample // 2, fill=255)
    elif radius > 0:
        draw.rounded_rectangle(box, radius=radius * supersample, fill=255)
    else:
        draw.rectangle(box, fill=255)
    return big.resize((width, height), Image.Resampling.LANCZOS)


def circle_mask(size: tuple[int, int], *, supersample: int = 4) -> Image.Image:
    """Centered circle with diameter equal to the short side."""
    width, height = size
    diameter = min(width, height) * supersample
    big = Image.new("L", (width * supersample, height * supersample), 0)
    left = (width * supersample - diameter) // 2
    top = (height * supersample - diameter) // 2
    ImageDraw.Draw(big).ellipse((left, top, left + diameter - 1, top + diameter - 1), fill=255)
    return big.resize((width, height), Image.Resampling.LANCZOS)
