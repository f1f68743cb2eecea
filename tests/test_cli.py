"""Tests for the command-line entry point."""
import json
from pathlib import Path

import pytest

from smartmeal import cli
from smartmeal.providers.stores import RecipeStore

EXAMPLE_PROFILE = str(Path(__file__).parent.parent / "config" / "user_profile.yaml.example")


class BrokenStore(RecipeStore):
    def query(self, recipe_filter, ordering, limit, include_details=True):
        raise ConnectionError("database unreachable")

    def get_by_ids(self, recipe_ids):
        raise ConnectionError("database unreachable")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("SMARTMEAL_CONFIG", "SMARTMEAL_REDIS_URL", "SMARTMEAL_GENERATOR_URL"):
        monkeypatch.delenv(name, raising=False)
    # Keep the stderr handler from binding to capsys streams
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


def run(recipes_path, *extra):
    argv = ["--profile", EXAMPLE_PROFILE, "--recipes", recipes_path, "--start", "2024-01-01"]
    return cli.main(argv + list(extra))


class TestParseMealTypes:
    """Tests for parse_meal_types()."""

    def test_split_and_strip(self):
        assert cli.parse_meal_types("breakfast, dinner,,") == ["breakfast", "dinner"]

    def test_empty(self):
        assert cli.parse_meal_types(None) == []


class TestMain:
    """Tests for main()."""

    def test_json_output(self, recipes_path, capsys):
        assert run(recipes_path, "--days", "2", "--output", "json") == 0

        data = json.loads(capsys.readouterr().out)
        assert data["status"] == "complete"
        assert data["meal_plan"]["end_date"] == "2024-01-02"
        assert len(data["assignments"]) == 6
        # Example profile is allergic to peanuts
        assert {1, 8, 13, 17}.isdisjoint(a["recipe_id"] for a in data["assignments"])

    def test_markdown_output(self, recipes_path, capsys):
        assert run(recipes_path, "--days", "1", "--meal-types", "dinner", "--name", "Dinners") == 0
        out = capsys.readouterr().out
        assert out.startswith("# Dinners")
        assert "### Dinner:" in out

    def test_both_outputs_to_files(self, recipes_path, tmp_path):
        target = tmp_path / "plan.txt"
        assert run(recipes_path, "--days", "1", "--output", "both", "--output-file", str(target)) == 0
        assert (tmp_path / "plan.md").read_text().startswith("# Smart Meal Plan")
        assert json.loads((tmp_path / "plan.json").read_text())["status"] == "complete"

    def test_missing_profile(self, recipes_path, tmp_path, capsys):
        code = cli.main(["--profile", str(tmp_path / "nope.yaml"), "--recipes", recipes_path])
        assert code == 1
        assert "User profile file not found" in capsys.readouterr().err

    def test_missing_recipes(self, tmp_path):
        assert cli.main(["--profile", EXAMPLE_PROFILE, "--recipes", str(tmp_path / "none.json")]) == 1

    def test_invalid_days(self, recipes_path):
        assert run(recipes_path, "--days", "0") == 1

    def test_unknown_meal_type(self, recipes_path, capsys):
        assert run(recipes_path, "--meal-types", "brunch") == 1
        assert "Unknown meal type" in capsys.readouterr().err

    def test_store_failure_exit_code(self, recipes_path, monkeypatch, capsys):
        class BrokenRecipes:
            @staticmethod
            def from_json(path):
                return BrokenStore()

        monkeypatch.setattr(cli, "LocalRecipeStore", BrokenRecipes)
        assert run(recipes_path, "--days", "1") == 3
        assert "RETRIEVAL_FAILURE" in capsys.readouterr().err
