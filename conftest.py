import pytest
from commitscope import (
    ProgressReporter, Row, Settings, Panels, AnalyticsSession,
    CoordinateModel, aggregate_commits, parse_timestamp,
)

CSV_HEADER = "commit,file,line,depth,length,type,author,date,time,timezone,datetime"


def make_row(commit_id, file, line, depth, length, type_, when, author="alice"):
    """Build a Row from an ISO timestamp with offset, e.g. 2025-01-06T09:30:00-08:00."""
    moment = parse_timestamp(when)
    offset = when[-6:]
    return Row(
        commit_id=commit_id,
        file=file,
        line=line,
        depth=depth,
        length=length,
        type=type_,
        author=author,
        date=parse_timestamp(f"{when[:10]}T00:00{offset}"),
        time=when[11:19],
        timezone=offset,
        datetime=moment,
    )


@pytest.fixture
def quiet_reporter():
    return ProgressReporter(quiet=True)


@pytest.fixture
def sample_rows():
    """
    Three commits on Mon / Wed / Fri of the same week (all -08:00):
      a1  2025-01-06 09:30  2 lines (js, css)
      b2  2025-01-08 14:15  3 lines (js, js, html)
      c3  2025-01-10 22:45  1 line  (js)
    """
    return [
        make_row("a1", "src/app.js", 1, 0, 20, "js", "2025-01-06T09:30:00-08:00"),
        make_row("a1", "src/style.css", 1, 1, 10, "css", "2025-01-06T09:30:00-08:00"),
        make_row("b2", "src/app.js", 2, 1, 30, "js", "2025-01-08T14:15:00-08:00", author="bob"),
        make_row("b2", "src/app.js", 3, 2, 15, "js", "2025-01-08T14:15:00-08:00", author="bob"),
        make_row("b2", "index.html", 1, 0, 40, "html", "2025-01-08T14:15:00-08:00", author="bob"),
        make_row("c3", "src/app.js", 4, 1, 5, "js", "2025-01-10T22:45:00-08:00"),
    ]


@pytest.fixture
def sample_commits(sample_rows):
    return aggregate_commits(sample_rows)


@pytest.fixture
def model(sample_commits):
    m = CoordinateModel(Settings())
    m.rebuild(sample_commits)
    return m


@pytest.fixture
def loc_csv(tmp_path, sample_rows):
    """The sample rows written out as loc.csv."""
    lines = [CSV_HEADER]
    for r in sample_rows:
        lines.append(",".join([
            r.commit_id, r.file, str(r.line), str(r.depth), str(r.length), r.type,
            r.author, r.date.strftime("%Y-%m-%d"), r.time, r.timezone,
            r.datetime.isoformat(),
        ]))
    path = tmp_path / "loc.csv"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def session(sample_rows, quiet_reporter):
    s = AnalyticsSession(Settings(), Panels.full(), quiet_reporter)
    s.start(sample_rows)
    return s
