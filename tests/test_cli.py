"""Tests for the raidsync command line."""

import json

import pytest

from raidsync.interface.cli import build_parser, main
from raidsync.state import JsonProfileBackend, ProfileStore
from raidsync.state.tables import TABLE_FILES

from conftest import SESSION_ID


@pytest.fixture
def workspace(tmp_path, tables, profile):
    """Profiles and tables on disk, as the CLI expects them."""
    profiles_dir = tmp_path / "profiles"
    tables_dir = tmp_path / "tables"
    tables_dir.mkdir()

    dumped = tables.model_dump(mode="json")
    for name in TABLE_FILES:
        (tables_dir / f"{name}.json").write_text(json.dumps(dumped[name]), encoding="utf-8")

    store = ProfileStore(JsonProfileBackend(profiles_dir))
    store.add_profile(profile)
    store.save_profile(SESSION_ID)

    return tmp_path


class TestParser:
    def test_subcommand_required(self):
        """Running without a subcommand is a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_resolve_defaults(self):
        """Directories default to ./profiles and ./tables."""
        args = build_parser().parse_args(["resolve", "s1", "req.json"])
        assert args.profiles == "profiles"
        assert args.tables == "tables"
        assert args.config is None


class TestResolveCommand:
    def test_resolves_and_saves(self, workspace, profile, make_request, capsys):
        """A valid request is applied and written back to disk."""
        request = make_request(profile.characters.pmc, exit="killed")
        request_path = workspace / "request.json"
        request_path.write_text(request.model_dump_json(), encoding="utf-8")

        code = main([
            "resolve", SESSION_ID, str(request_path),
            "--profiles", str(workspace / "profiles"),
            "--tables", str(workspace / "tables"),
            "--config", str(workspace / "absent.yaml"),
        ])

        assert code == 0
        assert "Raid outcome" in capsys.readouterr().out

        saved = ProfileStore(JsonProfileBackend(workspace / "profiles")).load_profile(SESSION_ID)
        assert len(saved.insurance) == 2
        assert all(item.tpl != "tpl_helmet" for item in saved.characters.pmc.inventory.items)

    def test_invalid_request(self, workspace):
        """A request that does not validate is reported, not raised."""
        request_path = workspace / "request.json"
        request_path.write_text('{"exit": "killed"}', encoding="utf-8")

        code = main([
            "resolve", SESSION_ID, str(request_path),
            "--profiles", str(workspace / "profiles"),
            "--tables", str(workspace / "tables"),
        ])

        assert code == 1

    def test_unknown_profile(self, workspace):
        """Unknown sessions exit with status 1."""
        code = main([
            "resolve", "nobody", str(workspace / "request.json"),
            "--profiles", str(workspace / "profiles"),
            "--tables", str(workspace / "tables"),
        ])
        assert code == 1

    def test_unreadable_profile(self, workspace, profile, make_request):
        """Resolving against a corrupt profile exits with status 1."""
        (workspace / "profiles" / "broken.json").write_text("[1, 2,]", encoding="utf-8")
        request_path = workspace / "request.json"
        request_path.write_text(make_request(profile.characters.pmc).model_dump_json(), encoding="utf-8")

        code = main([
            "resolve", "broken", str(request_path),
            "--profiles", str(workspace / "profiles"),
            "--tables", str(workspace / "tables"),
        ])
        assert code == 1


class TestInspectCommand:
    def test_inspect(self, workspace, capsys):
        """Inspect prints a profile summary."""
        code = main(["inspect", SESSION_ID, "--profiles", str(workspace / "profiles")])
        assert code == 0
        out = capsys.readouterr().out
        assert "Tarkov" in out
        assert "2.50" in out

    def test_inspect_unknown(self, workspace):
        """Inspecting an unknown session exits with status 1."""
        assert main(["inspect", "nobody", "--profiles", str(workspace / "profiles")]) == 1

    def test_inspect_unreadable(self, workspace, capsys):
        """A profile that cannot be repaired is reported instead of raising."""
        (workspace / "profiles" / "broken.json").write_text("[1, 2,]", encoding="utf-8")
        assert main(["inspect", "broken", "--profiles", str(workspace / "profiles")]) == 1
        assert "Unreadable profile" in capsys.readouterr().out
