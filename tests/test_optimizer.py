from posterkit.render.optimizer import font_size_cap, grow_font_size, optimize_font_size


def _half_em(text: str, size: int) -> float:
    return len(text) * size * 0.5


def test_single_word_grows_up_to_cap() -> None:
    size = optimize_font_size("Jo", 20, 1000, _half_em, step=4, cap_fraction=0.5)
    assert size == 28
    assert size <= font_size_cap(20, 0.5)


def test_single_word_stops_at_fit_margin() -> None:
    # "Maximilian" is 5 * size wide; 90% of 300 allows size 54.
    size = optimize_font_size("Maximilian", 40, 300, _half_em, step=2, cap_fraction=1.0)
    assert size == 54


def test_never_shrinks_below_base() -> None:
    assert optimize_font_size("Supercalifragilistic", 40, 100, _half_em) == 40
    assert optimize_font_size("", 40, 100, _half_em) == 40


def test_two_words_grow_while_whole_name_fits() -> None:
    assert optimize_font_size("Jo Smith", 10, 100, _half_em, step=2, cap_fraction=0.5) == 14


def test_two_words_grow_while_first_word_fits_break_margin() -> None:
    # Full name overflows at base, but "Alexandria" fits in 80% of the width.
    assert optimize_font_size("Alexandria Fitzgerald", 10, 100, _half_em, step=2, cap_fraction=0.5) == 14


def test_two_words_hold_base_when_first_word_is_too_wide() -> None:
    assert optimize_font_size("Alexandria Fitzgerald", 10, 60, _half_em, step=2, cap_fraction=0.5) == 10


def test_three_words_test_everything_but_last_word() -> None:
    # "Mary Ann" (8 chars) against 80% of 50: 4 * size <= 40.
    size = optimize_font_size("Mary Ann Fitzgerald", 6, 50, _half_em, step=1, cap_fraction=1.0)
    assert size == 10


def test_fractional_steps_yield_increasing_integer_sizes() -> None:
    size = optimize_font_size("Jo", 22, 540, _half_em, step=1.08, cap_fraction=0.5)
    assert size == 33


def test_growth_decision_is_independent_of_scale() -> None:
    # Same name and zone at half and full size: growth stops after the same step.
    small = grow_font_size("Maximilian", 21.6, 150, _half_em, step=2.16, cap_fraction=1.0)
    large = grow_font_size("Maximilian", 43.2, 300, _half_em, step=4.32, cap_fraction=1.0)
    assert large == 2 * small
    assert optimize_font_size("Maximilian", 43.2, 300, _half_em, step=4.32, cap_fraction=1.0) == round(large)
