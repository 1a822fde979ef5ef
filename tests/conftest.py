from __future__ import annotations

from pathlib import Path

import pytest

from tests._fixtures.skill_builder import SkillBuilder


@pytest.fixture
def skill_builder(tmp_path: Path) -> SkillBuilder:
    """Provide a reusable skill project builder rooted at the pytest tmp_path."""
    return SkillBuilder(tmp_path)
