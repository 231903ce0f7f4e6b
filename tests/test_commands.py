"""Command registry: sanitization, registration rules, lookup and help."""

import pytest

from commlink.commands import CommandRegistry, ServiceCommand, sanitize
from commlink.errors import ConflictError, UnknownCommandError, ValidationError


@pytest.fixture
def registry():
    reg = CommandRegistry()
    reg.register("help", "List the available commands", shortcut="h")
    reg.register("status", "Report the service status", shortcut="s")
    reg.register("List All", "List everything", shortcut="all")
    return reg


@pytest.mark.parametrize("raw, expected", [
    ("help", "help"),
    ("  HELP  ", "help"),
    ("Show Status", "show-status"),
    ("show \t  status\nnow", "show-status-now"),
    ("already-hyphenated", "already-hyphenated"),
    ("", ""),
    (None, ""),
])
def test_sanitize(raw, expected):
    assert sanitize(raw) == expected


@pytest.mark.parametrize("raw", ["help", "  Show  Status ", "a\tb\nc", "MiXeD-Case Name", "   ", "x  -  y"])
def test_sanitize_is_idempotent(raw):
    assert sanitize(sanitize(raw)) == sanitize(raw)


class TestRegister:
    def test_stores_canonical_name(self, registry):
        command = registry.resolve("list-all")
        assert command.name == "list-all"
        assert command.shortcut == "all"
        assert command.implemented

    def test_shortcut_must_be_in_name(self):
        reg = CommandRegistry()
        with pytest.raises(ValidationError):
            reg.register("status", "...", shortcut="x")
        assert len(reg) == 0

    def test_shortcut_is_sanitized(self):
        reg = CommandRegistry()
        command = reg.register("Show Status", "...", shortcut=" Show S")
        assert command.shortcut == "show-s"

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError):
            CommandRegistry().register("   ", "...")

    def test_duplicate_name_conflicts(self, registry):
        with pytest.raises(ConflictError):
            registry.register("HELP", "again")

    def test_duplicate_shortcut_conflicts(self, registry):
        with pytest.raises(ConflictError):
            registry.register("shutdown", "...", shortcut="s")

    def test_name_equal_to_existing_shortcut_conflicts(self, registry):
        with pytest.raises(ConflictError):
            registry.register("h", "...")

    def test_frozen_registry_rejects_new_commands(self, registry):
        registry.freeze()
        assert registry.frozen
        with pytest.raises(ConflictError):
            registry.register("reboot", "...")


class TestResolve:
    def test_name_and_shortcut_resolve_to_same_command(self, registry):
        assert registry.resolve("help") is registry.resolve("h")
        assert registry.resolve("help") == registry.resolve("h")

    def test_resolve_sanitizes_input(self, registry):
        assert registry.resolve("  List   ALL ").name == "list-all"
        assert registry.resolve("ALL").name == "list-all"

    def test_unknown_command(self, registry):
        with pytest.raises(UnknownCommandError):
            registry.resolve("frobnicate")
        assert registry.find("frobnicate") is None

    def test_malformed_token(self, registry):
        with pytest.raises(ValidationError):
            registry.resolve("   ")

    def test_contains(self, registry):
        assert "help" in registry
        assert "s" in registry
        assert "frobnicate" not in registry
        assert "" not in registry
        assert 5 not in registry


class TestHelp:
    def test_help_label_highlights_shortcut(self):
        assert ServiceCommand("help", shortcut="h").help_label == "(h)elp"
        assert ServiceCommand("list-all", shortcut="all").help_label == "list-(all)"
        assert ServiceCommand("version").help_label == "version"

    def test_help_description_marks_unimplemented(self):
        assert ServiceCommand("x", "Does x").help_description == "Does x"
        assert ServiceCommand("x", "Does x", implemented=False).help_description == "Does x (not implemented)"

    def test_help_table_sorted_by_name(self, registry):
        registry.register("reboot", "Restart the host", implemented=False)
        table = registry.help_table()
        assert list(table) == ["(h)elp", "list-(all)", "reboot", "(s)tatus"]
        assert table["reboot"] == "Restart the host (not implemented)"

    def test_iteration_is_sorted(self, registry):
        assert [c.name for c in registry] == ["help", "list-all", "status"]
        assert len(registry) == 3
