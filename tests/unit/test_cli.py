from __future__ import annotations

import gzip
import io
from pathlib import Path

import pytest

from logroll.cli.main import build_parser, main


def test_parser_defaults_leave_settings_untouched() -> None:
    args = build_parser().parse_args([])
    assert args.path is None
    assert args.rotate is None
    assert args.compress is None
    assert args.at is None


@pytest.mark.asyncio
async def test_main_writes_stdin_lines(tmp_path: Path) -> None:
    target = tmp_path / "out.log"

    code = await main(["--path", str(target)], stdin=io.BytesIO(b"one\ntwo\n"))

    assert code == 0
    assert target.read_bytes() == b"one\ntwo\n"


@pytest.mark.asyncio
async def test_main_keeps_final_line_without_newline(tmp_path: Path) -> None:
    target = tmp_path / "out.log"

    await main(["--path", str(target)], stdin=io.BytesIO(b"a\nb"))

    assert target.read_bytes() == b"a\nb\n"


@pytest.mark.asyncio
async def test_main_with_rotation_flags_keeps_every_line(tmp_path: Path) -> None:
    target = tmp_path / "out.log"
    lines = b"".join(f"line {i:04d}\n".encode() for i in range(50))

    code = await main(
        ["--path", str(target), "--rotate", "--compress", "--max-size", "1"],
        stdin=io.BytesIO(lines),
    )

    assert code == 0
    archives = sorted(tmp_path.glob("out_*.gz"))
    live = sorted(
        p for p in tmp_path.glob("out_*.log") if not p.is_symlink()
    )
    recovered = b"".join(gzip.decompress(p.read_bytes()) for p in archives)
    recovered += b"".join(p.read_bytes() for p in live)
    assert sorted(recovered.splitlines()) == sorted(lines.splitlines())


@pytest.mark.asyncio
async def test_main_rejects_invalid_schedule(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    code = await main(
        ["--path", str(tmp_path / "out.log"), "--at", "99:99"],
        stdin=io.BytesIO(b""),
    )

    assert code == 1
    assert "Error" in capsys.readouterr().err
    assert not (tmp_path / "out.log").exists()
