import logging
import os

from django.db import DEFAULT_DB_ALIAS, DatabaseError
from PIL import Image, ImageDraw, ImageFont

from . import utils
from .exceptions import RenderError
from .models import Country

logger = logging.getLogger(__name__)

IMAGE_SIZE = (800, 600)
TOP_N = 5


def _font(size):
    try:
        return ImageFont.truetype("DejaVuSans.ttf", size)
    except OSError:
        return ImageFont.load_default()


def top_countries(using=DEFAULT_DB_ALIAS, limit=TOP_N):
    """(total, [(name, estimated_gdp), ...]) for the highest estimates."""
    qs = Country.objects.using(using)
    total = qs.count()
    top = list(qs.order_by("-estimated_gdp", "id").values_list("name", "estimated_gdp")[:limit])
    return total, top


def draw_summary(total, top, timestamp):
    img = Image.new("RGB", IMAGE_SIZE, color="white")
    draw = ImageDraw.Draw(img)
    font_title, font_body, font_list = _font(30), _font(20), _font(16)

    draw.text((50, 50), "Country Summary", fill="black", font=font_title)
    draw.text((50, 100), f"Total Countries: {total}", fill="black", font=font_body)

    y = 150
    for name, gdp in top:
        draw.text((50, y), f"{name}: {gdp:.2f}", fill="black", font=font_list)
        y += 30

    draw.text((50, y + 50), f"Last Refreshed: {timestamp}", fill="black", font=font_list)
    return img


def render_summary(now, using=DEFAULT_DB_ALIAS):
    """
    Generate a summary PNG showing total countries, top 5 by estimated GDP,
    and the refresh timestamp. The previous image is replaced only once the
    new one is fully written. Returns the image path.
    """
    try:
        total, top = top_countries(using)
        path = utils.get_summary_image_path()
        tmp_path = f"{path}.tmp"
        draw_summary(total, top, now.isoformat()).save(tmp_path, "PNG")
        os.replace(tmp_path, path)
    except (DatabaseError, OSError, ValueError) as exc:
        raise RenderError(f"could not render summary image: {exc}") from exc

    logger.info("Summary image written to %s (%d countries)", path, total)
    return path
