import random

import pytest

from h5viz import actions as act
from h5viz.actions import COLS, ROWS, FetchSlice
from h5viz.core.selection import Selection, SliceWindow
from h5viz.errors import DatasetNotFound
from h5viz.state import Browsing, Error, Help, Searching, Viewing, apply, initial_state


def run(state, *actions):
    """Apply actions in order, returning the final state and every command."""
    commands = []
    for action in actions:
        state, emitted = apply(state, action)
        commands.extend(emitted)
    return state, commands


# =============================================================================
# Browsing / Searching
# =============================================================================

def test_initial_state(state):
    assert state.mode == Browsing(cursor=0, filter="")
    assert not state.quit
    assert state.filtered_paths() == ["routput/Cube", "routput/Dmd", "series", "zeros"]


def test_move_cursor_is_clamped(state):
    state, _ = run(state, act.MoveCursor(2))
    assert state.mode.cursor == 2
    state, _ = run(state, act.MoveCursor(100))
    assert state.mode.cursor == 3
    state, _ = run(state, act.MoveCursor(-100))
    assert state.mode.cursor == 0


def test_set_filter_resets_cursor(state):
    state, _ = run(state, act.MoveCursor(3), act.SetFilter("routput"))
    assert state.mode == Browsing(cursor=0, filter="routput")
    state, _ = run(state, act.MoveCursor(5))
    assert state.mode.cursor == 1


def test_search_confirm_applies_filter(state):
    state, _ = run(state, act.StartSearch())
    assert isinstance(state.mode, Searching)
    state, _ = run(state, act.SetFilter("se"))
    assert state.filtered_paths() == ["series"]
    state, _ = run(state, act.Confirm())
    assert state.mode == Browsing(cursor=0, filter="se")


def test_search_cancel_restores_previous(state):
    state, _ = run(state, act.SetFilter("dmd"), act.MoveCursor(0), act.StartSearch())
    assert state.mode.text == "dmd"
    state, _ = run(state, act.SetFilter("zzz"), act.Cancel())
    assert state.mode == Browsing(cursor=0, filter="dmd")


def test_confirm_on_empty_list_is_a_noop(state):
    state, _ = run(state, act.SetFilter("nothing"))
    new_state, commands = apply(state, act.Confirm())
    assert new_state == state
    assert commands == []


def test_browsing_cancel_is_a_noop(state):
    assert apply(state, act.Cancel()) == (state, [])


# =============================================================================
# Opening Datasets
# =============================================================================

def test_open_dataset_uses_full_extent_and_one_fetch(state):
    state, commands = apply(state, act.OpenDataset("routput/Dmd"))

    view = state.mode
    assert isinstance(view, Viewing)
    assert view.window == SliceWindow(((0, 120), (0, 5)))
    assert (view.row_axis, view.col_axis) == (0, 1)
    assert view.cursor == (0, 0)
    assert view.loading
    assert commands == [FetchSlice(Selection("routput/Dmd", view.window))]


def test_confirm_opens_dataset_under_cursor(state):
    state, commands = run(state, act.MoveCursor(1), act.Confirm())
    assert state.mode.path == "routput/Dmd"
    assert state.mode.parent == Browsing(cursor=1)
    assert len(commands) == 1


def test_open_three_dimensional_dataset_fixes_middle_dim(state):
    state, _ = apply(state, act.OpenDataset("routput/Cube"))
    assert state.mode.window == SliceWindow(((0, 2), 0, (0, 4)))
    assert (state.mode.row_axis, state.mode.col_axis) == (0, 2)


def test_open_one_dimensional_dataset(state):
    state, _ = apply(state, act.OpenDataset("series"))
    assert state.mode.window == SliceWindow(((0, 50),))
    assert state.mode.row_axis == state.mode.col_axis == 0


def test_open_unknown_dataset_is_an_error(state):
    new_state, commands = apply(state, act.OpenDataset("nope"))
    assert new_state.mode == Error("dataset not found: nope", previous=Browsing())
    assert commands == []


def test_cancel_returns_to_parent_browsing(state):
    state, _ = run(state, act.SetFilter("r"), act.MoveCursor(1), act.Confirm())
    state, _ = run(state, act.Cancel())
    assert state.mode == Browsing(cursor=1, filter="r")


# =============================================================================
# Scrolling / Cycling
# =============================================================================

def test_scroll_window_is_clamped_to_dataset(small_state):
    state, _ = apply(small_state, act.OpenDataset("routput/Dmd"))
    assert state.mode.window.selectors[0] == (0, 10)

    state, commands = apply(state, act.ScrollSlice(115, ROWS))
    assert state.mode.window.selectors[0] == (110, 120)
    assert state.mode.cursor[0] == 115
    assert commands == [FetchSlice(state.mode.selection)]


def test_scroll_without_window_change_emits_nothing(state):
    state, _ = apply(state, act.OpenDataset("routput/Dmd"))
    new_state, commands = apply(state, act.ScrollSlice(-1, ROWS))
    assert commands == []
    assert new_state.mode.window == state.mode.window


def test_scroll_columns(small_state):
    state, _ = apply(small_state, act.OpenDataset("routput/Cube"))
    state, commands = apply(state, act.ScrollSlice(2, COLS))
    # 4 columns fit the window, only the cursor moves
    assert state.mode.window == SliceWindow(((0, 2), 0, (0, 4)))
    assert state.mode.cursor == (0, 0, 2)
    assert commands == []


def test_move_cursor_in_viewing_scrolls_rows(small_state):
    state, _ = apply(small_state, act.OpenDataset("routput/Dmd"))
    state, _ = apply(state, act.MoveCursor(3))
    assert state.mode.window.selectors[0] == (3, 13)


def test_cycle_index_wraps(state):
    state, _ = apply(state, act.OpenDataset("routput/Cube"))
    state, commands = apply(state, act.CycleIndex(1, 1))
    assert state.mode.window.selectors[1] == 1
    assert state.mode.cursor[1] == 1
    assert len(commands) == 1

    state, _ = apply(state, act.CycleIndex(1, -2))
    assert state.mode.window.selectors[1] == 2


def test_cycle_index_of_displayed_dim_is_a_noop(state):
    state, _ = apply(state, act.OpenDataset("routput/Cube"))
    assert apply(state, act.CycleIndex(0, 1)) == (state, [])
    assert apply(state, act.CycleIndex(7, 1)) == (state, [])


def test_cycle_axis_never_equals_the_other_axis(state):
    state, _ = apply(state, act.OpenDataset("routput/Cube"))
    state, _ = apply(state, act.CycleIndex(1, 2))

    state, commands = apply(state, act.CycleAxis(ROWS, 1))
    assert (state.mode.row_axis, state.mode.col_axis) == (1, 2)
    # dim 0 becomes fixed at the cursor, dim 1 spans its extent
    assert state.mode.window == SliceWindow((0, (0, 3), (0, 4)))
    assert len(commands) == 1

    state, _ = apply(state, act.CycleAxis(ROWS, 1))
    assert (state.mode.row_axis, state.mode.col_axis) == (0, 2)

    state, _ = apply(state, act.CycleAxis(COLS, 1))
    assert (state.mode.row_axis, state.mode.col_axis) == (0, 1)


def test_cycle_axis_needs_two_dimensions(state):
    state, _ = apply(state, act.OpenDataset("series"))
    assert apply(state, act.CycleAxis(ROWS, 1)) == (state, [])


def test_toggles_and_reload(state):
    state, _ = apply(state, act.OpenDataset("zeros"))
    state, _ = run(state, act.ToggleFormat(), act.ToggleTotals(), act.TogglePlot())
    assert (state.mode.formatted, state.mode.totals, state.mode.plot) == (False, False, True)

    _, commands = apply(state, act.Reload())
    assert commands == [FetchSlice(state.mode.selection, refresh=True)]


# =============================================================================
# Fetch Results / Errors / Help
# =============================================================================

def test_fetch_result_is_stored(state):
    state, (command,) = run(state, act.OpenDataset("zeros"))
    state, _ = apply(state, act.FetchCompleted(command.selection, data="payload"))
    assert state.mode.data == "payload"
    assert not state.mode.loading


def test_stale_fetch_result_is_discarded(small_state):
    state, (first,) = run(small_state, act.OpenDataset("routput/Dmd"))
    state, _ = apply(state, act.ScrollSlice(5, ROWS))

    new_state, _ = apply(state, act.FetchCompleted(first.selection, data="old"))
    assert new_state == state
    assert new_state.mode.data is None


def test_fetch_result_reaches_viewing_under_help(state):
    state, (command,) = run(state, act.OpenDataset("zeros"), act.ShowHelp())
    state, _ = apply(state, act.FetchCompleted(command.selection, data="payload"))
    assert isinstance(state.mode, Help)
    assert state.mode.previous.data == "payload"


def test_fetch_error_enters_error_and_cancel_restores(state):
    state, (command,) = run(state, act.OpenDataset("routput/Dmd"))
    viewing = state.mode

    error = DatasetNotFound("routput/Dmd")
    state, commands = apply(state, act.FetchCompleted(command.selection, error=error))
    assert state.mode == Error("dataset not found: routput/Dmd", previous=viewing)
    assert commands == []

    state, _ = apply(state, act.Cancel())
    assert state.mode == viewing


def test_second_error_replaces_message_but_keeps_previous(state):
    state, _ = apply(state, act.OpenDataset("zeros"))
    viewing = state.mode
    key = viewing.selection
    state, _ = run(
        state,
        act.FetchCompleted(key, error=RuntimeError("first")),
        act.FetchCompleted(key, error=RuntimeError("second")),
    )
    assert state.mode == Error("second", previous=viewing)


def test_help_overlay(state):
    state, _ = apply(state, act.ShowHelp())
    assert state.mode == Help(previous=Browsing())
    assert apply(state, act.ShowHelp()) == (state, [])
    state, _ = apply(state, act.Cancel())
    assert state.mode == Browsing()


def test_tick_counts(state):
    state, _ = run(state, act.Tick(), act.Tick())
    assert state.ticks == 2


def test_quit_is_terminal(state):
    state, _ = apply(state, act.Quit())
    assert state.quit
    assert apply(state, act.OpenDataset("zeros")) == (state, [])
    assert apply(state, act.Tick()) == (state, [])


def test_apply_is_deterministic(state):
    actions = [act.MoveCursor(1), act.Confirm(), act.ScrollSlice(3), act.ToggleTotals()]
    assert run(state, *actions) == run(state, *actions)


# =============================================================================
# Invariants
# =============================================================================

ACTIONS = [
    act.MoveCursor(1), act.MoveCursor(-1), act.MoveCursor(25), act.Confirm(),
    act.SetFilter(""), act.SetFilter("routput"), act.StartSearch(), act.Cancel(),
    act.ScrollSlice(1, ROWS), act.ScrollSlice(-7, ROWS), act.ScrollSlice(40, ROWS),
    act.ScrollSlice(1, COLS), act.ScrollSlice(-3, COLS),
    act.CycleIndex(0, 1), act.CycleIndex(1, 1), act.CycleIndex(1, -1),
    act.CycleAxis(ROWS, 1), act.CycleAxis(COLS, -1),
    act.ToggleFormat(), act.TogglePlot(), act.ShowHelp(), act.Tick(),
    act.OpenDataset("routput/Dmd"), act.OpenDataset("routput/Cube"),
    act.OpenDataset("series"), act.OpenDataset("missing"),
]


def check_invariants(state):
    view = state.viewing
    if view is None:
        return
    meta = state.catalog[view.path]
    window = view.window
    assert window.ndim == meta.ndim
    assert window.fits(meta.shape)
    assert view.row_axis != view.col_axis or meta.ndim < 2
    for axis in range(window.ndim):
        start, stop = window.extent(axis)
        assert start <= view.cursor[axis] < max(stop, start + 1)


@pytest.mark.parametrize("seed", range(20))
def test_random_action_sequences_keep_invariants(catalog, seed):
    rng = random.Random(seed)
    state = initial_state(catalog, (10, 3))
    for _ in range(200):
        state, commands = apply(state, rng.choice(ACTIONS))
        check_invariants(state)
        for command in commands:
            assert command.selection == state.selection
            assert command.selection.path in catalog


def test_stale_fetch_error_is_discarded(small_state):
    state, (first,) = apply(small_state, act.OpenDataset("routput/Dmd"))
    state, (second,) = apply(state, act.ScrollSlice(115, ROWS))
    assert first.selection != second.selection

    stale, _ = apply(state, act.FetchCompleted(first.selection, error=RuntimeError("old window")))
    assert stale == state

    state, _ = apply(state, act.Cancel())
    stale, _ = apply(state, act.FetchCompleted(second.selection, error=RuntimeError("left dataset")))
    assert stale == state
    assert isinstance(stale.mode, Browsing)
