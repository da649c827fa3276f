import pytest

from participium.assignment import (
    FixedSelector,
    LeastLoadedSelector,
    RoundRobinSelector,
    get_selector,
)
from participium.domain import ReportStatus
from participium.errors import BadRequest, NotFound
from participium.models import Report

LIGHTING = ("Public Lighting Department", "Electrical staff member")


async def _add_report(session, reporter_id, assignee_id, status):
    report = Report(
        reporter_id=reporter_id,
        title="t",
        description="d",
        category="Public Lighting",
        latitude=45.07,
        longitude=7.68,
        photos=[],
        status=status.value,
        assignee_id=assignee_id,
    )
    session.add(report)
    await session.commit()


@pytest.mark.asyncio
async def test_no_candidate_returns_none(session):
    for selector in (FixedSelector(session), LeastLoadedSelector(session), RoundRobinSelector(session)):
        assert await selector.select(*LIGHTING) is None


@pytest.mark.asyncio
async def test_unknown_department_or_role_raises(session):
    selector = FixedSelector(session)
    with pytest.raises(NotFound):
        await selector.select("Ministry of Silly Walks", "Walker")
    with pytest.raises(NotFound):
        await selector.select("Public Lighting Department", "Plumber")
    with pytest.raises(BadRequest):
        await selector.select("", "Electrical staff member")


@pytest.mark.asyncio
async def test_fixed_picks_lowest_id(session, make_staff, make_user):
    first, _ = await make_staff("sparky1", *LIGHTING)
    await make_staff("sparky2", *LIGHTING)
    # staff of another role never qualifies
    await make_staff("roadie", "Public Works Department", "Road maintenance staff member")
    chosen = await FixedSelector(session).select(*LIGHTING)
    assert chosen.id == first.id


@pytest.mark.asyncio
async def test_least_loaded_counts_only_active_reports(session, make_staff, make_user):
    citizen, _ = await make_user("citizen")
    busy, _ = await make_staff("busy", *LIGHTING)
    idle, _ = await make_staff("idle", *LIGHTING)

    await _add_report(session, citizen.id, busy.id, ReportStatus.IN_PROGRESS)
    # Resolved work no longer counts
    await _add_report(session, citizen.id, idle.id, ReportStatus.RESOLVED)
    await _add_report(session, citizen.id, idle.id, ReportStatus.RESOLVED)

    chosen = await LeastLoadedSelector(session).select(*LIGHTING)
    assert chosen.id == idle.id


@pytest.mark.asyncio
async def test_least_loaded_ties_go_to_lowest_id(session, make_staff):
    first, _ = await make_staff("a", *LIGHTING)
    await make_staff("b", *LIGHTING)
    chosen = await LeastLoadedSelector(session).select(*LIGHTING)
    assert chosen.id == first.id


@pytest.mark.asyncio
async def test_round_robin_cycles(session, make_staff):
    a, _ = await make_staff("a", *LIGHTING)
    b, _ = await make_staff("b", *LIGHTING)
    selector = RoundRobinSelector(session)
    picks = [(await selector.select(*LIGHTING)).id for _ in range(3)]
    assert picks == [a.id, b.id, a.id]


@pytest.mark.asyncio
async def test_get_selector_by_policy(session):
    assert isinstance(get_selector(session), LeastLoadedSelector)
    assert isinstance(get_selector(session, "ROUND_ROBIN"), RoundRobinSelector)
    with pytest.raises(ValueError, match="Unknown assignment policy"):
        get_selector(session, "lottery")
