"""
Photo Filter Module for the Wedding Gallery

Instagram-style filters offered to guests when they upload a photo.
Each filter is a chain of CSS-like steps:
- brightness, contrast, saturate (Pillow ImageEnhance)
- sepia, grayscale (blend with a toned copy)
- hue-rotate (shift of the HSV hue channel)

The same chain is rendered as a CSS `filter` string for the browser and
applied with Pillow when the server stores a filtered copy.
"""

import io
from PIL import Image, ImageEnhance, ImageOps

DEFAULT_FILTER = 'normal'

FILTERS = {
    'normal': {'name': 'Normal', 'steps': ()},
    'clarendon': {'name': 'Clarendon', 'steps': (('brightness', 1.1), ('contrast', 1.2), ('saturate', 1.35))},
    'gingham': {'name': 'Gingham', 'steps': (('brightness', 1.05), ('sepia', 0.11), ('contrast', 0.9))},
    'moon': {'name': 'Moon', 'steps': (('grayscale', 1), ('brightness', 1.1), ('contrast', 1.1))},
    'lark': {'name': 'Lark', 'steps': (('brightness', 1.1), ('contrast', 0.85), ('saturate', 0.75), ('sepia', 0.1))},
    'reyes': {'name': 'Reyes', 'steps': (('brightness', 0.9), ('contrast', 0.8), ('saturate', 0.75), ('sepia', 0.22))},
    'juno': {'name': 'Juno', 'steps': (('brightness', 1.1), ('contrast', 1.1), ('saturate', 1.4))},
    'slumber': {'name': 'Slumber', 'steps': (('brightness', 0.9), ('saturate', 0.85), ('sepia', 0.2))},
    'crema': {'name': 'Crema', 'steps': (('brightness', 1.05), ('contrast', 0.9), ('saturate', 0.7), ('sepia', 0.1))},
    'ludwig': {'name': 'Ludwig', 'steps': (('brightness', 1.05), ('contrast', 1.05), ('saturate', 0.8), ('sepia', 0.08))},
    'aden': {'name': 'Aden', 'steps': (('brightness', 1.1), ('contrast', 0.9), ('saturate', 0.85), ('hue-rotate', 20))},
    'perpetua': {'name': 'Perpetua', 'steps': (('brightness', 1.05), ('contrast', 1.1), ('saturate', 1.1))},
    'amaro': {'name': 'Amaro', 'steps': (('brightness', 1.1), ('contrast', 0.9), ('saturate', 1.5), ('hue-rotate', -10))},
    'mayfair': {'name': 'Mayfair', 'steps': (('brightness', 1.05), ('contrast', 1.1), ('saturate', 1.1), ('sepia', 0.05))},
    'rise': {'name': 'Rise', 'steps': (('brightness', 1.05), ('contrast', 0.9), ('saturate', 0.9), ('sepia', 0.2))},
    'hudson': {'name': 'Hudson', 'steps': (
        ('brightness', 1.1), ('contrast', 1.2), ('saturate', 1.1), ('sepia', 0.15), ('hue-rotate', -10)
    )},
    'valencia': {'name': 'Valencia', 'steps': (('brightness', 1.1), ('contrast', 1.1), ('saturate', 1.25), ('sepia', 0.1))},
    'xpro2': {'name': 'X-Pro II', 'steps': (('brightness', 1.1), ('contrast', 1.2), ('saturate', 1.3), ('sepia', 0.3))},
    'sierra': {'name': 'Sierra', 'steps': (('brightness', 0.9), ('contrast', 0.9), ('saturate', 0.8), ('sepia', 0.1))},
    'willow': {'name': 'Willow', 'steps': (('brightness', 1.1), ('contrast', 0.95), ('saturate', 0.5), ('sepia', 0.3))},
}

# Warm tone used for sepia (black -> dark brown -> cream)
SEPIA_BLACK = (0, 0, 0)
SEPIA_MID = (112, 66, 20)
SEPIA_WHITE = (255, 240, 192)


def is_valid_filter(filter_id):
    """Check if a filter id is in the catalog"""
    return filter_id in FILTERS


def css_style(filter_id):
    """Render a filter's steps as a CSS `filter` value.

    Args:
        filter_id: Catalog id (e.g. 'clarendon')

    Returns:
        str: e.g. "brightness(1.1) contrast(1.2) saturate(1.35)"; empty for 'normal'
    """
    parts = []
    for operation, amount in FILTERS[filter_id]['steps']:
        if operation == 'hue-rotate':
            parts.append(f"hue-rotate({amount:g}deg)")
        else:
            parts.append(f"{operation}({amount:g})")
    return ' '.join(parts)


def list_filters():
    """Get the catalog in display order for the client"""
    return [
        {'id': filter_id, 'name': entry['name'], 'style': css_style(filter_id)}
        for filter_id, entry in FILTERS.items()
    ]


def _sepia(image, amount):
    toned = ImageOps.colorize(ImageOps.grayscale(image), black=SEPIA_BLACK, white=SEPIA_WHITE, mid=SEPIA_MID)
    return Image.blend(image, toned, min(amount, 1))


def _grayscale(image, amount):
    gray = ImageOps.grayscale(image).convert('RGB')
    return Image.blend(image, gray, min(amount, 1))


def _hue_rotate(image, degrees):
    hue, saturation, value = image.convert('HSV').split()
    shift = int(round(degrees / 360 * 256)) % 256
    hue = hue.point(lambda h: (h + shift) % 256)
    return Image.merge('HSV', (hue, saturation, value)).convert('RGB')


def apply_filter(image, filter_id):
    """Apply a catalog filter to a PIL Image.

    Returns a new RGB image; the input is not modified.
    """
    if not is_valid_filter(filter_id):
        raise ValueError(f'Unknown filter: {filter_id}')

    result = image.convert('RGB')
    for operation, amount in FILTERS[filter_id]['steps']:
        if operation == 'brightness':
            result = ImageEnhance.Brightness(result).enhance(amount)
        elif operation == 'contrast':
            result = ImageEnhance.Contrast(result).enhance(amount)
        elif operation == 'saturate':
            result = ImageEnhance.Color(result).enhance(amount)
        elif operation == 'sepia':
            result = _sepia(result, amount)
        elif operation == 'grayscale':
            result = _grayscale(result, amount)
        elif operation == 'hue-rotate':
            result = _hue_rotate(result, amount)
    return result


def render_filtered_jpeg(image_bytes, filter_id, quality=90):
    """Decode an uploaded photo, apply a filter and encode it as JPEG bytes"""
    with Image.open(io.BytesIO(image_bytes)) as image:
        # Honor camera orientation before filtering
        image = ImageOps.exif_transpose(image)
        filtered = apply_filter(image, filter_id)

    buffer = io.BytesIO()
    filtered.save(buffer, format='JPEG', quality=quality)
    return buffer.getvalue()
