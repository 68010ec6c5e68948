# tests/test_cli.py
import subprocess
import sys
from pathlib import Path

import numpy as np
from PIL import Image, ImageDraw
import typer
from typer.testing import CliRunner

import ciqgen
from ciq import file_utils, kmeans

CLI_SCRIPT = Path(__file__).resolve().parents[1] / "ciqgen.py"


def create_dummy_image(path: Path, fmt: str = "PPM"):
    img = Image.new("RGB", (64, 64), color=(150, 120, 200))
    draw = ImageDraw.Draw(img)
    draw.rectangle([(10, 10), (30, 30)], fill=(200, 50, 50))
    draw.ellipse([(30, 30), (60, 60)], fill=(50, 200, 50))
    img.save(path, fmt)


def run_cli(*args):
    return subprocess.run(
        [sys.executable, str(CLI_SCRIPT), *[str(a) for a in args]],
        capture_output=True,
        text=True
    )


def test_ciqgen_cli_writes_image_and_palette(tmp_path):
    input_image = tmp_path / "input.ppm"
    create_dummy_image(input_image)
    output_image = tmp_path / "output.ppm"

    result = run_cli(input_image, output_image, "3", "--seed", "42")

    assert result.returncode == 0, f"CLI failed: {result.stderr}"
    assert "Iteration: 1" in result.stdout
    assert "Processing complete!" in result.stdout

    palette_path = tmp_path / "palette.pal"
    assert output_image.exists()
    assert palette_path.stat().st_size == 3 * 3

    _, _, pixels = file_utils.read_ppm(output_image)
    palette = {tuple(c) for c in file_utils.read_palette(palette_path).tolist()}
    assert {tuple(c) for c in pixels.reshape(-1, 3).tolist()} <= palette


def test_ciqgen_cli_custom_palette_and_legend(tmp_path):
    input_image = tmp_path / "input.ppm"
    create_dummy_image(input_image)
    palette_path = tmp_path / "colors" / "custom.pal"
    legend_path = tmp_path / "legend.png"

    result = run_cli(
        input_image, tmp_path / "output.ppm", "4",
        "--seed", "1",
        "--init-strategy", "canonical",
        "--palette", palette_path,
        "--legend", legend_path,
        "--verbose",
    )

    assert result.returncode == 0, f"CLI failed: {result.stderr}"
    assert "- Image size: 64x64" in result.stdout
    assert "- Centroid   0:" in result.stdout
    assert palette_path.stat().st_size == 4 * 3
    with Image.open(legend_path) as im:
        assert im.info["ciqgen:PaletteColors"] == "4"
        assert im.info["ciqgen:InitStrategy"] == "canonical"
        assert im.info["ciqgen:Seed"] == "1"


def test_ciqgen_cli_rejects_too_many_clusters(tmp_path):
    input_image = tmp_path / "tiny.ppm"
    file_utils.write_ppm(input_image, np.zeros((2, 2, 3), dtype=np.uint8))
    output_image = tmp_path / "output.ppm"

    result = run_cli(input_image, output_image, "5")

    assert result.returncode != 0
    assert not output_image.exists()
    assert not (tmp_path / "palette.pal").exists()


def test_ciqgen_cli_rejects_non_ppm_input(tmp_path):
    input_image = tmp_path / "input.png"
    create_dummy_image(input_image, "PNG")
    output_image = tmp_path / "output.ppm"

    result = run_cli(input_image, output_image, "3")

    assert result.returncode == 1
    assert not output_image.exists()


def test_ciqgen_cli_any_format_accepts_png(tmp_path):
    input_image = tmp_path / "input.png"
    create_dummy_image(input_image, "PNG")
    output_image = tmp_path / "output.ppm"

    result = run_cli(input_image, output_image, "3", "--any-format", "--seed", "0")

    assert result.returncode == 0, f"CLI failed: {result.stderr}"
    assert output_image.exists()


def test_ciqgen_cli_refuses_to_overwrite_without_yes(tmp_path):
    input_image = tmp_path / "input.ppm"
    create_dummy_image(input_image)
    output_image = tmp_path / "output.ppm"
    output_image.write_bytes(b"existing")

    result = run_cli(input_image, output_image, "2")
    assert result.returncode == 1
    assert output_image.read_bytes() == b"existing"

    result = run_cli(input_image, output_image, "2", "--yes", "--seed", "3")
    assert result.returncode == 0, f"CLI failed: {result.stderr}"
    assert output_image.read_bytes().startswith(b"P6")


def test_ciqgen_cli_help_output():
    result = run_cli("--help")
    assert result.returncode == 0
    assert "usage:" in result.stdout.lower()


def test_ciqgen_cli_runs_twice_into_same_directory(tmp_path):
    first_input = tmp_path / "a.ppm"
    second_input = tmp_path / "b.ppm"
    create_dummy_image(first_input)
    create_dummy_image(second_input)

    first = run_cli(first_input, tmp_path / "qa.ppm", "1")
    assert first.returncode == 0, f"CLI failed: {first.stderr}"

    second = run_cli(second_input, tmp_path / "qb.ppm", "1")
    assert second.returncode == 0, f"CLI failed: {second.stderr}"
    assert (tmp_path / "qb.ppm").exists()
    assert (tmp_path / "palette.pal").stat().st_size == 3


def test_ciqgen_cli_guards_explicit_palette_path(tmp_path):
    input_image = tmp_path / "input.ppm"
    create_dummy_image(input_image)
    palette_path = tmp_path / "keep.pal"
    palette_path.write_bytes(b"\x01\x02\x03")

    result = run_cli(input_image, tmp_path / "output.ppm", "1", "--palette", palette_path)

    assert result.returncode == 1
    assert palette_path.read_bytes() == b"\x01\x02\x03"
    assert not (tmp_path / "output.ppm").exists()


def test_ciqgen_cli_allocation_failure_writes_nothing(tmp_path, monkeypatch):
    input_image = tmp_path / "input.ppm"
    create_dummy_image(input_image)
    output_image = tmp_path / "output.ppm"

    def raise_memory_error(*args, **kwargs):
        raise MemoryError

    monkeypatch.setattr(kmeans.np, "cumsum", raise_memory_error)
    app = typer.Typer()
    app.command()(ciqgen.ciq_cli)

    result = CliRunner().invoke(app, [str(input_image), str(output_image), "3", "--seed", "0"])

    assert result.exit_code == 1
    assert "Failed to quantize" in result.output
    assert not output_image.exists()
    assert not (tmp_path / "palette.pal").exists()
