#!/usr/bin/env python3
"""
Build app icons and other images from the SVG source images

Derives the iOS app icon set (with its Contents.json), the Android
density-bucketed WebP icons, and a few loose PNGs (Play Store icon, legacy
splash image, web assets).  Most sources live in the server repo, which
should be checked out as a sibling of this one.

This script doesn't need to be run routinely; it's fine to check in the
results.  To test it, run it and check that there's no diff in the working
tree.

Requirements:
    pip install cairosvg pillow

    or, with --toolchain command, the rsvg-convert and cwebp binaries
    (apt install librsvg2-bin webp)

Usage:
    python build_icons.py [--sources-dir ../server]
"""

from __future__ import annotations

import argparse
import glob
import json
import logging
import subprocess
import sys
import tempfile
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path

logger = logging.getLogger(__name__)

SCRIPT_DIR = Path(__file__).resolve().parent

IOS_ICONSET_DIR = Path("ios/App/Images.xcassets/AppIcon.appiconset")
ANDROID_RES_DIR = Path("android/app/src/main/res")
WEB_IMG_DIR = Path("static/img")


class IconBuildError(Exception):
    """Base class for failures that stop the build before any tool runs."""


class MissingToolError(IconBuildError):
    def __init__(self, tool: str, hint: str):
        super().__init__(f"This script requires {tool}.  Try: {hint}")
        self.tool = tool
        self.hint = hint


class MissingSourceError(IconBuildError):
    def __init__(self, role: str, path: Path):
        super().__init__(f"Source image for {role} not found: {path}")
        self.role = role
        self.path = path


@dataclass(frozen=True)
class IosIcon:
    size_pt: float
    scale: int
    idiom: str
    # Only needed where the pixel size isn't a whole size_pt * scale.
    pixels: int | None = None

    @property
    def size_px(self) -> int:
        if self.pixels is not None:
            return self.pixels
        return int(self.size_pt * self.scale)

    @property
    def size_label(self) -> str:
        pt = format(self.size_pt, "g")
        return f"{pt}x{pt}"

    @property
    def filename(self) -> str:
        return f"Icon-{self.size_label}@{self.scale}x.png"

    def manifest_entry(self) -> dict:
        return {
            "size": self.size_label,
            "idiom": self.idiom,
            "filename": self.filename,
            "scale": f"{self.scale}x",
        }


# https://developer.apple.com/design/human-interface-guidelines/app-icons
IOS_APP_ICONS = (
    IosIcon(20, 2, "iphone"),
    IosIcon(20, 3, "iphone"),
    IosIcon(29, 2, "iphone"),
    IosIcon(29, 3, "iphone"),
    IosIcon(40, 2, "iphone"),
    IosIcon(40, 3, "iphone"),
    IosIcon(60, 2, "iphone"),
    IosIcon(60, 3, "iphone"),
    IosIcon(20, 1, "ipad"),
    IosIcon(20, 2, "ipad"),
    IosIcon(29, 1, "ipad"),
    IosIcon(29, 2, "ipad"),
    IosIcon(40, 1, "ipad"),
    IosIcon(40, 2, "ipad"),
    IosIcon(76, 1, "ipad"),
    IosIcon(76, 2, "ipad"),
    IosIcon(83.5, 2, "ipad", pixels=167),
    IosIcon(1024, 1, "ios-marketing"),
)

IOS_MANIFEST_INFO = {"version": 1, "author": "xcode"}

# https://developer.android.com/training/multiscreen/screendensities
ANDROID_DENSITIES = {
    "mdpi": 1,
    "hdpi": 1.5,
    "xhdpi": 2,
    "xxhdpi": 3,
    "xxxhdpi": 4,
}


@dataclass(frozen=True)
class Sources:
    icon_square: Path
    icon_mono: Path
    loading_spinner: Path
    logo: Path

    @classmethod
    def from_dirs(cls, sources_dir: Path, root: Path) -> "Sources":
        images = sources_dir / "static" / "images"
        return cls(
            icon_square=images / "logo" / "icon-square.svg",
            icon_mono=images / "logo" / "icon-mono.svg",
            loading_spinner=images / "loading" / "spinner.svg",
            logo=root / "assets" / "logo.svg",
        )

    def validate(self) -> None:
        for role, path in vars(self).items():
            if not path.is_file():
                raise MissingSourceError(role, path)


class Toolchain:
    """Rasterizes SVGs and encodes lossless WebP.

    Used as a context manager for the length of a run, so any scratch
    files an implementation needs are released on every exit path.
    """

    name = "base"

    def check(self) -> None:
        raise NotImplementedError

    def rasterize(self, svg_path: Path, width: int) -> bytes:
        raise NotImplementedError

    def encode_lossless(self, png_data: bytes) -> bytes:
        raise NotImplementedError

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False


class LibraryToolchain(Toolchain):
    """cairosvg for rasterizing, Pillow for PNG cleanup and WebP."""

    name = "library"

    def check(self) -> None:
        try:
            import cairosvg  # noqa: F401
        except (ImportError, OSError) as e:
            # OSError: the package is there but libcairo is not
            raise MissingToolError(
                "cairosvg", "pip install cairosvg (and apt install libcairo2)"
            ) from e

        try:
            from PIL import features
        except ImportError as e:
            raise MissingToolError("Pillow", "pip install cairosvg pillow") from e

        if not features.check("webp"):
            raise MissingToolError(
                "Pillow with WebP support", "pip install --upgrade pillow"
            )

    def rasterize(self, svg_path: Path, width: int) -> bytes:
        import cairosvg
        from PIL import Image

        png_data = cairosvg.svg2png(url=str(svg_path), output_width=width)

        img = Image.open(BytesIO(png_data))
        if img.mode != "RGBA":
            img = img.convert("RGBA")

        out = BytesIO()
        img.save(out, "PNG", optimize=True)
        return out.getvalue()

    def encode_lossless(self, png_data: bytes) -> bytes:
        from PIL import Image

        img = Image.open(BytesIO(png_data))
        out = BytesIO()
        # quality is the compression effort when lossless; method 6 is slowest
        img.save(out, "WEBP", lossless=True, quality=100, method=6)
        return out.getvalue()


class CommandToolchain(Toolchain):
    """rsvg-convert and cwebp, run as subprocesses."""

    name = "command"

    TOOLS = (
        ("rsvg-convert", "--version", "apt install librsvg2-bin"),
        ("cwebp", "-version", "apt install webp"),
    )

    def __init__(self):
        self._tmpdir: tempfile.TemporaryDirectory | None = None

    def check(self) -> None:
        for tool, version_flag, hint in self.TOOLS:
            try:
                subprocess.run(
                    [tool, version_flag],
                    check=True,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.DEVNULL,
                )
            except (OSError, subprocess.CalledProcessError) as e:
                raise MissingToolError(tool, hint) from e

    def __enter__(self):
        self._tmpdir = tempfile.TemporaryDirectory(prefix="build-icons-")
        return self

    def __exit__(self, *exc_info):
        self._tmpdir.cleanup()
        self._tmpdir = None
        return False

    @property
    def tmp(self) -> Path:
        if self._tmpdir is None:
            raise RuntimeError("CommandToolchain used outside of a with block")
        return Path(self._tmpdir.name)

    def rasterize(self, svg_path: Path, width: int) -> bytes:
        output = self.tmp / "raster.png"
        subprocess.run(
            ["rsvg-convert", "-w", str(width), str(svg_path), "-o", str(output)],
            check=True,
        )
        return output.read_bytes()

    def encode_lossless(self, png_data: bytes) -> bytes:
        source = self.tmp / "encode.png"
        output = self.tmp / "encode.webp"
        source.write_bytes(png_data)
        subprocess.run(
            ["cwebp", "-quiet", "-lossless", "-z", "9", str(source), "-o", str(output)],
            check=True,
        )
        return output.read_bytes()


TOOLCHAINS = {
    LibraryToolchain.name: LibraryToolchain,
    CommandToolchain.name: CommandToolchain,
}


@dataclass
class IconBuild:
    root: Path
    sources: Sources
    toolchain: Toolchain
    written: list[Path] = field(default_factory=list)

    def write(self, relpath: Path, data: bytes) -> Path:
        output = self.root / relpath
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_bytes(data)
        self.written.append(output)
        logger.info("  %s (%d bytes)", relpath.as_posix(), len(data))
        return output

    def write_png(self, src: Path, width: int, relpath: Path) -> Path:
        return self.write(relpath, self.toolchain.rasterize(src, width))


def make_ios_app_icon(build: IconBuild) -> None:
    """Write the AppIcon set and its Contents.json.

    Icons already present are left alone; they still get a manifest entry.
    iPhone and iPad entries with the same size and scale share one file,
    so the set holds fewer PNGs than manifest entries.
    """
    logger.info("iOS app icon set:")
    images = []
    for icon in IOS_APP_ICONS:
        relpath = IOS_ICONSET_DIR / icon.filename
        if (build.root / relpath).exists():
            logger.debug("  %s exists, skipping", relpath.as_posix())
        else:
            build.write_png(build.sources.icon_square, icon.size_px, relpath)
        images.append(icon.manifest_entry())

    manifest = {"images": images, "info": IOS_MANIFEST_INFO}
    data = json.dumps(manifest, indent=2) + "\n"
    build.write(IOS_ICONSET_DIR / "Contents.json", data.encode("utf-8"))


def android_icon_path(restype: str, density: str, name: str) -> Path:
    """Resource path of one density variant, relative to the repo root."""
    return ANDROID_RES_DIR / f"{restype}-{density}" / f"{name}.webp"


def make_android_icon(build: IconBuild, src: Path, size_dp: int, restype: str, name: str) -> None:
    """Write `name` as a lossless WebP into every density bucket of `restype`."""
    logger.info("Android %s/%s (%gdp):", restype, name, size_dp)

    # Clear out any old icons, e.g. from a different size or format.
    res_dir = build.root / ANDROID_RES_DIR
    pattern = f"{glob.escape(restype)}-*/{glob.escape(name)}.*"
    for stale in sorted(res_dir.glob(pattern)):
        logger.debug("  removing %s", stale.relative_to(build.root).as_posix())
        stale.unlink()

    for density, scale in ANDROID_DENSITIES.items():
        size_px = round(size_dp * scale)
        png_data = build.toolchain.rasterize(src, size_px)
        build.write(android_icon_path(restype, density, name), build.toolchain.encode_lossless(png_data))


def make_android(build: IconBuild) -> None:
    """Launcher and notification icons, Play Store icon, legacy splash."""
    # https://developer.android.com/google-play/resources/icon-design-specifications
    make_android_icon(build, build.sources.icon_square, 48, "mipmap", "ic_launcher")
    make_android_icon(build, build.sources.icon_mono, 24, "drawable", "ic_notification")

    logger.info("Play Store and legacy splash:")
    build.write_png(build.sources.icon_square, 512, WEB_IMG_DIR / "play-store-icon.png")
    build.write_png(build.sources.icon_square, 192, WEB_IMG_DIR / "splash-logo.png")


def make_misc(build: IconBuild) -> None:
    """Loading spinner and in-app logo."""
    logger.info("Web images:")
    build.write_png(build.sources.loading_spinner, 48, WEB_IMG_DIR / "message-loading.png")
    build.write_png(build.sources.logo, 128, WEB_IMG_DIR / "logo.png")


def build_all(root: Path, sources: Sources, toolchain: Toolchain) -> list[Path]:
    """Check prerequisites, then generate every output under `root`.

    Nothing is written unless the toolchain and all sources are present.
    Returns the files written; skipped iOS icons are not included.
    """
    toolchain.check()
    sources.validate()

    build = IconBuild(root=root, sources=sources, toolchain=toolchain)
    with toolchain:
        make_ios_app_icon(build)
        make_android(build)
        make_misc(build)
    return build.written


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Build app icons and other images from the SVG sources."
    )
    parser.add_argument(
        "--root",
        type=Path,
        default=SCRIPT_DIR,
        help="Repository to write images into (default: this script's directory)",
    )
    parser.add_argument(
        "--sources-dir",
        type=Path,
        default=None,
        help="Checkout holding static/images/ (default: ../server next to the root)",
    )
    parser.add_argument(
        "--toolchain",
        choices=sorted(TOOLCHAINS),
        default=LibraryToolchain.name,
        help="Rasterize with cairosvg/Pillow or with rsvg-convert/cwebp (default: library)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set log level (default: INFO)",
    )
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(message)s")

    root = args.root.resolve()
    sources_dir = args.sources_dir or root.parent / "server"
    sources = Sources.from_dirs(sources_dir.resolve(), root)
    toolchain = TOOLCHAINS[args.toolchain]()

    try:
        written = build_all(root, sources, toolchain)
    except IconBuildError as e:
        logger.error("Error: %s", e)
        return 1
    except subprocess.CalledProcessError as e:
        logger.error("Error: command failed (exit %d): %s", e.returncode, " ".join(e.cmd))
        return e.returncode

    logger.info("\n✓ Wrote %d files under %s", len(written), root)
    return 0


if __name__ == "__main__":
    sys.exit(main())
