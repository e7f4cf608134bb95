from tools.colors import BASE_PALETTE, generate_colors, golden_angle_hue


def test_small_counts_are_palette_prefixes():
    for n in range(0, 11):
        assert generate_colors(n) == BASE_PALETTE[:n]


def test_first_color():
    assert generate_colors(1) == ["rgba(99, 102, 241, 0.8)"]


def test_golden_angle_extension():
    colors = generate_colors(12)

    assert len(colors) == 12
    assert colors[:10] == BASE_PALETTE
    assert colors[10] == "hsla(295, 70%, 60%, 0.8)"
    assert colors[11] == "hsla(72.5, 70%, 60%, 0.8)"


def test_hue_rule():
    assert golden_angle_hue(10) == (10 * 137.5) % 360
    assert golden_angle_hue(11) == (11 * 137.5) % 360


def test_deterministic_and_distinct():
    assert generate_colors(40) == generate_colors(40)
    assert len(set(generate_colors(40))) == 40


def test_negative_count():
    assert generate_colors(-3) == []


def test_palette_not_mutated_by_callers():
    colors = generate_colors(3)
    colors.append("x")
    assert len(BASE_PALETTE) == 10
