import pytest

from commitscope import (
    ScatterRenderer, CoordinateModel, Settings, Tooltip, PointerEvent, Transition,
    MarkDiff, render_svg, draw_order, AnalyticsSession,
)


@pytest.fixture
def renderer(model):
    return ScatterRenderer(model, Settings())

# ============================================================================
# UNIT TESTS: INITIAL RENDER
# ============================================================================

def test_initial_render_draw_order(session):
    renderer = session.renderer
    assert renderer.order == ["b2", "a1", "c3"]
    assert [m.id for m in renderer.frame()] == ["b2", "a1", "c3"]
    assert not renderer.animating

def test_initial_render_styling(session):
    for mark in session.renderer.frame():
        assert mark.fill == "steelblue"
        assert mark.fill_opacity == 0.7
        assert not mark.selected

def test_initial_render_positions(session, sample_commits):
    model = session.model
    by_id = {m.id: m for m in session.renderer.frame()}
    for commit in sample_commits:
        cx, cy = model.position(commit)
        assert by_id[commit.id].cx == pytest.approx(cx)
        assert by_id[commit.id].cy == pytest.approx(cy)
        assert by_id[commit.id].r == pytest.approx(model.r(commit.total_lines))

def test_layers_order():
    assert ScatterRenderer.LAYERS == (
        "gridlines", "x-axis", "y-axis", "brush-overlay", "dots", "brush-selection",
    )

def test_draw_order_largest_first(sample_commits):
    assert [c.id for c in draw_order(sample_commits)] == ["b2", "a1", "c3"]

def test_gridlines_follow_y_ticks(renderer):
    assert renderer.gridlines[0] == 570
    assert renderer.gridlines[-1] == 10

# ============================================================================
# UNIT TESTS: KEYED UPDATE
# ============================================================================

def test_update_diff(renderer, model, sample_commits):
    model.rebuild(sample_commits[:2])
    renderer.render_initial(sample_commits[:2])
    model.rebuild(sample_commits)
    diff = renderer.update(sample_commits)
    assert diff == MarkDiff(entered=["c3"], updated=["b2", "a1"], exited=[])

def test_entering_marks_grow_from_zero(renderer, model, sample_commits):
    renderer.render_initial([])
    diff = renderer.update(sample_commits)
    assert sorted(diff.entered) == ["a1", "b2", "c3"]
    assert all(m.r == 0 for m in renderer.frame())

    renderer.advance(100)
    radii = {m.id: m.r for m in renderer.frame()}
    assert radii["b2"] == pytest.approx(7.5)
    assert radii["c3"] == pytest.approx(1.5)

    renderer.advance(100)
    assert not renderer.animating
    assert {m.id: m.r for m in renderer.frame()}["b2"] == pytest.approx(15)

def test_entering_marks_start_at_target_position(renderer, model, sample_commits):
    renderer.render_initial([])
    renderer.update(sample_commits)
    cx, cy = model.position(sample_commits[0])
    mark = next(m for m in renderer.frame() if m.id == "a1")
    assert (mark.cx, mark.cy) == (pytest.approx(cx), pytest.approx(cy))

def test_exiting_marks_shrink_then_removed(session, sample_commits):
    renderer = session.renderer
    session.model.rebuild(sample_commits[:1])
    diff = renderer.update(sample_commits[:1])
    assert diff.exited == ["b2", "c3"]
    assert diff.updated == ["a1"]

    frame = renderer.frame()
    assert [m.id for m in frame] == ["b2", "c3", "a1"]
    assert set(renderer.marks) == {"a1", "b2", "c3"}

    renderer.advance(100)
    assert renderer.marks["b2"].attrs()["r"] == pytest.approx(7.5)

    renderer.advance(100)
    assert set(renderer.marks) == {"a1"}
    assert renderer.order == ["a1"]

def test_exiting_mark_reclaimed_on_return(session, sample_commits):
    renderer = session.renderer
    session.model.rebuild(sample_commits[:2])
    renderer.update(sample_commits[:2])
    renderer.advance(50)
    assert renderer.marks["c3"].exiting

    session.model.rebuild(sample_commits)
    diff = renderer.update(sample_commits)
    assert "c3" in diff.updated
    assert diff.entered == []
    assert not renderer.marks["c3"].exiting

    renderer.settle()
    assert renderer.marks["c3"].r == pytest.approx(3)

def test_retarget_mid_transition_is_continuous(session, sample_commits):
    renderer = session.renderer
    session.model.rebuild(sample_commits[:2])
    renderer.update(sample_commits[:2])
    renderer.advance(80)
    before = renderer.marks["a1"].attrs()

    session.model.rebuild(sample_commits)
    renderer.update(sample_commits)
    after = renderer.marks["a1"].attrs()
    assert after == pytest.approx(before)

def test_settle_completes_everything(session, sample_commits):
    session.model.rebuild(sample_commits[1:])
    session.renderer.update(sample_commits[1:])
    assert session.renderer.animating
    session.renderer.settle()
    assert not session.renderer.animating
    assert set(session.renderer.marks) == {"b2", "c3"}

def test_zero_duration_transition():
    t = Transition(start={"r": 0.0}, end={"r": 5.0}, duration=0)
    assert t.done
    assert t.sample() == {"r": 5.0}

def test_x_axis_follows_update(session, sample_commits):
    first_label = session.renderer.x_axis.ticks[0].label
    session.model.rebuild(sample_commits[:2])
    session.renderer.update(sample_commits[:2])
    assert session.renderer.x_axis.ticks[0].label == "06 AM"
    assert first_label == "Mon 06"

# ============================================================================
# UNIT TESTS: HOVER
# ============================================================================

def test_hover_shows_tooltip(session):
    session.on_pointer_enter("a1", 200, 300)
    tooltip = session.panels.tooltip
    assert not tooltip.hidden
    assert (tooltip.left, tooltip.top) == (210, 310)
    assert tooltip.link_text == "a1"
    assert tooltip.link_href == "https://github.com/vis-society/lab-7/commit/a1"
    assert tooltip.date == "2025-01-06"
    assert tooltip.time == "09:30:00"
    assert tooltip.author == "alice"
    assert tooltip.lines == "2"
    assert session.renderer.marks["a1"].fill_opacity == 1.0

def test_hover_move_and_leave(session):
    session.on_pointer_enter("b2", 200, 300)
    session.on_pointer_move(250, 320)
    tooltip = session.panels.tooltip
    assert (tooltip.left, tooltip.top) == (260, 330)

    session.on_pointer_leave("b2")
    assert tooltip.hidden
    assert session.renderer.marks["b2"].fill_opacity == 0.7

def test_hover_unknown_mark_is_noop(session):
    session.on_pointer_enter("zzz", 1, 1)
    assert session.panels.tooltip.hidden

def test_hover_without_tooltip(model, sample_commits):
    renderer = ScatterRenderer(model, Settings(), tooltip=None)
    renderer.render_initial(sample_commits)
    renderer.pointer_enter("a1", PointerEvent(5, 5))
    renderer.pointer_move(PointerEvent(6, 6))
    assert renderer.marks["a1"].fill_opacity == 1.0
    renderer.pointer_leave("a1")
    assert renderer.marks["a1"].fill_opacity == 0.7

def test_move_ignored_while_hidden():
    tooltip = Tooltip()
    renderer = ScatterRenderer(CoordinateModel(Settings()), Settings(), tooltip=tooltip)
    renderer.pointer_move(PointerEvent(100, 100))
    assert (tooltip.left, tooltip.top) == (0, 0)

# ============================================================================
# UNIT TESTS: SVG EXPORT
# ============================================================================

def test_render_svg_layers(session):
    svg = render_svg(session)
    assert svg.startswith("<svg")
    positions = [
        svg.index('class="gridlines"'),
        svg.index('class="x-axis"'),
        svg.index('class="y-axis"'),
        svg.index('class="overlay"'),
        svg.index('class="dots"'),
    ]
    assert positions == sorted(positions)
    assert svg.count("<circle") == 3
    assert 'class="selection"' not in svg
    assert "Mon 06" in svg

def test_render_svg_before_load():
    svg = render_svg(AnalyticsSession())
    assert "<circle" not in svg
    assert svg.rstrip().endswith("</svg>")
