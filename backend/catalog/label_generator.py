"""
Local product label generator
Uses PIL/Pillow and python-barcode to render printable shelf labels as PNG data URLs
"""
import io
import base64
import logging
from decimal import Decimal
from typing import Optional

from PIL import Image, ImageDraw, ImageFont
import barcode
from barcode.writer import ImageWriter

logger = logging.getLogger(__name__)

# Supported label sizes in millimetres (width, height)
LABEL_FORMATS = {
    '40x25': (40, 25),
    '50x30': (50, 30),
    '60x40': (60, 40),
    '80x50': (80, 50),
}
DEFAULT_LABEL_FORMAT = '50x30'

# 203 DPI thermal printers print 8 dots per millimetre
DOTS_PER_MM = 8


def _load_fonts(base_size):
    try:
        return (
            ImageFont.truetype('/usr/share/fonts/truetype/dejavu/DejaVuSans-Bold.ttf', base_size),
            ImageFont.truetype('/usr/share/fonts/truetype/dejavu/DejaVuSans.ttf', max(base_size - 4, 8)),
        )
    except (OSError, IOError):
        try:
            return (
                ImageFont.truetype('arial.ttf', base_size),
                ImageFont.truetype('arial.ttf', max(base_size - 4, 8)),
            )
        except (OSError, IOError):
            default = ImageFont.load_default()
            return default, default


def _draw_centered(draw, y, text, font, width):
    bbox = draw.textbbox((0, 0), text, font=font)
    text_width = bbox[2] - bbox[0]
    draw.text(((width - text_width) // 2, y), text, fill='black', font=font)
    return bbox[3] - bbox[1]


def generate_label_image(
    product_name: str,
    barcode_value: str,
    sku: Optional[str] = None,
    price: Optional[Decimal] = None,
    currency: str = 'TND',
    label_format: str = DEFAULT_LABEL_FORMAT,
) -> str:
    """
    Generate a product label.

    Layout, top to bottom: product name, Code128 barcode, barcode text with SKU, price.

    Args:
        product_name: Product name (truncated to fit)
        barcode_value: Value encoded in the barcode
        sku: SKU printed under the barcode (defaults to barcode_value)
        price: Sale price printed at the bottom (optional)
        currency: Currency code printed after the price
        label_format: One of LABEL_FORMATS

    Returns:
        Base64-encoded PNG image as data URL string

    Raises:
        ValueError: If the label format is unknown
    """
    if label_format not in LABEL_FORMATS:
        raise ValueError(f"Unknown label format: {label_format}")

    width_mm, height_mm = LABEL_FORMATS[label_format]
    width = width_mm * DOTS_PER_MM
    height = height_mm * DOTS_PER_MM
    margin = 2 * DOTS_PER_MM

    if sku is None:
        sku = barcode_value

    # Roughly one character per 1.6mm of label width
    max_name_length = int(width_mm / 1.6)
    if len(product_name) > max_name_length:
        product_name = product_name[:max_name_length - 3] + '...'

    font_large, font_small = _load_fonts(max(height // 12, 10))

    img = Image.new('RGB', (width, height), color='white')
    draw = ImageDraw.Draw(img)

    y = margin // 2
    y += _draw_centered(draw, y, product_name, font_large, width) + 4

    footer_lines = 2 if price is not None else 1
    footer_height = footer_lines * (getattr(font_small, 'size', 10) + 4)
    barcode_available_height = height - y - footer_height - margin // 2

    try:
        code128 = barcode.get_barcode_class('code128')
        barcode_img = code128(barcode_value, writer=ImageWriter()).render({
            'write_text': False,
            'module_width': 0.3,
            'module_height': 15.0,
            'quiet_zone': 2.0,
            'background': 'white',
            'foreground': 'black',
        })

        barcode_img_width, barcode_img_height = barcode_img.size
        barcode_width = width - (2 * margin)
        scale_factor = barcode_width / barcode_img_width
        scaled_height = int(barcode_img_height * scale_factor)
        if scaled_height > barcode_available_height:
            scale_factor = barcode_available_height / barcode_img_height
            scaled_height = barcode_available_height
            barcode_width = int(barcode_img_width * scale_factor)

        barcode_img = barcode_img.resize((max(barcode_width, 1), max(scaled_height, 1)), Image.Resampling.BILINEAR)
        img.paste(barcode_img, ((width - barcode_width) // 2, y))
        y += scaled_height + 2
    except Exception as e:
        # Render the raw value so the label stays usable
        logger.error(f"Barcode generation failed for '{barcode_value}': {str(e)}")
        y += _draw_centered(draw, y, f'BARCODE: {barcode_value}', font_small, width) + 2

    code_line = barcode_value if sku == barcode_value else f"{barcode_value}  {sku}"
    y += _draw_centered(draw, y, code_line, font_small, width) + 2

    if price is not None:
        _draw_centered(draw, y, f"{Decimal(price):.2f} {currency}", font_large, width)

    buffer = io.BytesIO()
    img.save(buffer, format='PNG', optimize=False, compress_level=1)
    image_base64 = base64.b64encode(buffer.getvalue()).decode('utf-8')
    buffer.close()
    img.close()

    return f'data:image/png;base64,{image_base64}'
