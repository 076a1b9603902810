import io

import pytest
from PIL import Image


def make_png(size=(32, 32), left=(255, 0, 0), right=(0, 0, 255)) -> bytes:
    width, height = size
    image = Image.new("RGB", size, right)
    image.paste(left, (0, 0, width // 2, height))
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def split_png() -> bytes:
    return make_png()
