"""pytest configuration and shared fixtures."""

from pathlib import Path

import pytest

from build_icons import MissingToolError, Sources, Toolchain


class FakeToolchain(Toolchain):
    """Stands in for cairosvg/Pillow with predictable bytes.

    Output depends only on the source file's contents and the requested
    width, which is enough to see which source and size went where.
    """

    name = "fake"

    def __init__(self, missing=None):
        self.missing = missing
        self.rasterized = []
        self.encoded = 0
        self.entered = False
        self.exited = False

    def check(self):
        if self.missing:
            raise MissingToolError(self.missing, f"install {self.missing}")

    def rasterize(self, svg_path, width):
        self.rasterized.append((Path(svg_path).name, width))
        return b"PNG " + Path(svg_path).read_bytes() + b" w=%d" % width

    def encode_lossless(self, png_data):
        self.encoded += 1
        return b"WEBP " + png_data

    def __enter__(self):
        self.entered = True
        return self

    def __exit__(self, *exc_info):
        self.exited = True
        return False


@pytest.fixture
def toolchain():
    return FakeToolchain()


@pytest.fixture
def sources_dir(tmp_path):
    """A stand-in for the sibling server checkout."""
    server = tmp_path / "server"
    images = server / "static" / "images"
    (images / "logo").mkdir(parents=True)
    (images / "loading").mkdir(parents=True)
    (images / "logo" / "icon-square.svg").write_text("<svg id='square'/>")
    (images / "logo" / "icon-mono.svg").write_text("<svg id='mono'/>")
    (images / "loading" / "spinner.svg").write_text("<svg id='spinner'/>")
    return server


@pytest.fixture
def root(tmp_path):
    repo = tmp_path / "app"
    (repo / "assets").mkdir(parents=True)
    (repo / "assets" / "logo.svg").write_text("<svg id='logo'/>")
    return repo


@pytest.fixture
def sources(sources_dir, root):
    return Sources.from_dirs(sources_dir, root)



@pytest.fixture
def fake_toolchain():
    """The FakeToolchain class, for tests that configure or subclass it."""
    return FakeToolchain
