"""Tests for utils."""
from PIL import Image

from utils import ensure_grayscale, get_image_info, load_grayscale_image, save_image, validate_image_file


def test_validate_image_file(tmp_path):
    image_path = tmp_path / 'a.png'
    Image.new('L', (2, 2)).save(image_path)
    (tmp_path / 'notes.txt').write_text('text')
    assert validate_image_file(str(image_path))
    assert not validate_image_file(str(tmp_path / 'notes.txt'))
    assert not validate_image_file(str(tmp_path / 'missing.png'))


def test_get_image_info(tmp_path):
    path = tmp_path / 'a.png'
    Image.new('RGB', (6, 4)).save(path)
    assert get_image_info(str(path)) == {'width': 6, 'height': 4, 'mode': 'RGB', 'format': 'PNG'}


def test_get_image_info_unreadable(tmp_path):
    path = tmp_path / 'broken.png'
    path.write_bytes(b'not an image')
    assert get_image_info(str(path)) is None


def test_transparency_becomes_white():
    rgba = Image.new('RGBA', (2, 2), (0, 0, 0, 0))
    assert ensure_grayscale(rgba).getpixel((0, 0)) == 255


def test_load_and_save_bilevel(tmp_path):
    source = tmp_path / 'in.png'
    Image.new('RGB', (3, 3), (200, 200, 200)).save(source)
    image = load_grayscale_image(str(source))
    assert image.image.mode == 'L'
    target = tmp_path / 'out' / 'result.png'
    save_image(image, str(target), bilevel=True)
    with Image.open(target) as saved:
        assert saved.mode == '1'
        assert saved.getpixel((1, 1)) == 255
