"""Tests for comparison category detection."""

from trendarc.engine.categories import detect_category
from trendarc.engine.scoring import ComparisonCategory


class TestDetectCategory:
    """Test category scoring and selection."""

    def test_known_movies(self) -> None:
        """Two known films are movies."""
        result = detect_category(["Oppenheimer", "Barbie"])

        assert result.category is ComparisonCategory.MOVIES
        assert result.confidence == 80
        assert all(e.source == "known_entity" for e in result.evidence)

    def test_known_products_capped(self) -> None:
        """Two known products plus a product pattern are capped at 95."""
        result = detect_category(["iPhone 15", "Galaxy S24"])

        assert result.category is ComparisonCategory.PRODUCTS
        assert result.confidence == 95

    def test_tech_pattern(self) -> None:
        """Programming languages match the tech pattern."""
        result = detect_category(["Python", "JavaScript"])

        assert result.category is ComparisonCategory.TECH
        assert result.confidence == 25

    def test_games_pattern(self) -> None:
        """Game titles match the games pattern."""
        assert detect_category(["Fortnite", "Minecraft"]).category is ComparisonCategory.GAMES

    def test_nothing_matches(self) -> None:
        """No signal stays general with the minimum confidence."""
        result = detect_category(["foo", "bar"])

        assert result.category is ComparisonCategory.GENERAL
        assert result.confidence == 20
        assert result.evidence == []
