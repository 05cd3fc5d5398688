from destinations.favorites import FavoriteSet


def test_toggle_and_iteration_order():
    favorites = FavoriteSet(["b", "", None])
    assert len(favorites) == 1

    assert favorites.toggle("a") is True
    assert favorites.toggle("b") is False
    favorites.add("c")
    assert list(favorites) == ["a", "c"]

    favorites.discard("missing")
    favorites.replace_all(["z", "y"])
    assert list(favorites) == ["y", "z"]
    assert "y" in favorites
