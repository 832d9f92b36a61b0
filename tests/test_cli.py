from typer.testing import CliRunner

from streamling.cli.main import app

runner = CliRunner(env={"COLUMNS": "200"})


def test_run_writes_responses(tmp_path):
    first = tmp_path / "alpha.txt"
    second = tmp_path / "beta.txt"
    first.write_text("Rivers flow to the sea.", encoding="utf-8")
    second.write_text("Mountains rise above the clouds.", encoding="utf-8")
    output_dir = tmp_path / "out"

    result = runner.invoke(
        app,
        [
            "run",
            first.as_posix(),
            second.as_posix(),
            "--instruction",
            "Repeat the text",
            "--provider",
            "groq",
            "--output-dir",
            output_dir.as_posix(),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "2 response(s) written" in result.output
    assert (output_dir / "alpha.md").read_text(encoding="utf-8") == "Rivers flow to the sea."
    assert (output_dir / "beta.md").read_text(encoding="utf-8") == "Mountains rise above the clouds."


def test_run_single_file_without_output_dir(tmp_path):
    path = tmp_path / "note.txt"
    path.write_text("Short note.", encoding="utf-8")

    result = runner.invoke(app, ["run", path.as_posix(), "-i", "Summarize", "--no-confidence"])

    assert result.exit_code == 0, result.output
    assert "succeeded" in result.output


def test_run_missing_file():
    result = runner.invoke(app, ["run", "does/not/exist.txt", "-i", "Summarize"])
    assert result.exit_code == 2


def test_run_unknown_provider(tmp_path):
    path = tmp_path / "note.txt"
    path.write_text("Short note.", encoding="utf-8")
    result = runner.invoke(app, ["run", path.as_posix(), "-i", "Summarize", "-p", "nope"])
    assert result.exit_code == 2


def test_run_unknown_model(tmp_path):
    path = tmp_path / "note.txt"
    path.write_text("Short note.", encoding="utf-8")
    result = runner.invoke(
        app, ["run", path.as_posix(), "-i", "Summarize", "-p", "gemini", "-m", "gpt-4o"]
    )
    assert result.exit_code == 1
    assert "Unknown model" in result.output


def test_run_missing_api_key(tmp_path, monkeypatch):
    monkeypatch.delenv("MISTRAL_API_KEY")
    path = tmp_path / "note.txt"
    path.write_text("Short note.", encoding="utf-8")
    result = runner.invoke(app, ["run", path.as_posix(), "-i", "Summarize", "-p", "mistral"])
    assert result.exit_code == 1
    assert "MISTRAL_API_KEY" in result.output


def test_run_duplicate_files(tmp_path):
    path = tmp_path / "note.txt"
    path.write_text("Short note.", encoding="utf-8")
    result = runner.invoke(app, ["run", path.as_posix(), path.as_posix(), "-i", "Summarize"])
    assert result.exit_code == 1
    assert "submitted twice" in result.output


def test_run_invalid_client_path(tmp_path):
    path = tmp_path / "note.txt"
    path.write_text("Short note.", encoding="utf-8")
    result = runner.invoke(
        app, ["run", path.as_posix(), "-i", "Summarize", "--client", "no_colon_here"]
    )
    assert result.exit_code == 2


def test_list_models():
    result = runner.invoke(app, ["models"])
    assert result.exit_code == 0
    assert "gemini-2.5-flash" in result.output
    assert "cerebras" in result.output


def test_list_models_for_provider():
    result = runner.invoke(app, ["models", "--provider", "mistral"])
    assert result.exit_code == 0
    assert "codestral-latest" in result.output
    assert "gemini" not in result.output
