"""Availability index: route matching, date windows, live seat counts, paging."""

from datetime import date, timedelta

import pytest

from rideshare.domain.search import SearchCriteria
from tests.conftest import DRIVER, OTHER_DRIVER, TOMORROW


async def collect(iterator):
    return [hit async for hit in iterator]


@pytest.mark.asyncio
async def test_accent_and_case_insensitive_route(marketplace, ride):
    hits = await collect(marketplace.search("ABIDJAN", "bouake", min_seats=2))

    assert [h.ride.id for h in hits] == [ride.id]
    assert hits[0].seats_remaining == 3
    assert hits[0].ride.destination == "Bouaké"


@pytest.mark.asyncio
async def test_substring_match(marketplace, ride):
    assert len(await collect(marketplace.search("abid", "bou"))) == 1
    assert await collect(marketplace.search("Abidjan", "Korhogo")) == []


@pytest.mark.asyncio
async def test_like_wildcards_are_literal(marketplace, ride):
    assert await collect(marketplace.search("%", "")) == []
    assert await collect(marketplace.search("_", "")) == []


@pytest.mark.asyncio
async def test_party_size_larger_than_capacity(marketplace, ride):
    assert await collect(marketplace.search("Abidjan", "Bouaké", min_seats=4)) == []


@pytest.mark.asyncio
async def test_free_seats_reflect_bookings(marketplace, ride):
    await marketplace.request_booking(ride.id, "passenger-aya", 2)

    assert await collect(marketplace.search("Abidjan", "Bouaké", min_seats=2)) == []
    [hit] = await collect(marketplace.search("Abidjan", "Bouaké"))
    assert hit.seats_remaining == 1


@pytest.mark.asyncio
async def test_full_ride_is_hidden_until_pending_expires(marketplace, ride, clock):
    await marketplace.request_booking(ride.id, "passenger-aya", 3)
    assert await collect(marketplace.search("Abidjan", "Bouaké")) == []

    clock.advance(minutes=30)

    [hit] = await collect(marketplace.search("Abidjan", "Bouaké"))
    assert hit.seats_remaining == 3


@pytest.mark.asyncio
async def test_cancelled_ride_is_hidden(marketplace, ride):
    await marketplace.cancel_ride(ride.id, DRIVER)
    assert await collect(marketplace.search("Abidjan", "Bouaké")) == []


@pytest.mark.asyncio
async def test_departed_ride_is_hidden(marketplace, ride, clock):
    clock.advance(days=1, hours=2)
    assert await collect(marketplace.search("Abidjan", "Bouaké")) == []


@pytest.mark.asyncio
async def test_date_filter(marketplace, ride):
    # TOMORROW departs 2026-03-03 09:30 UTC
    on_day = await collect(marketplace.search("Abidjan", "", on_date=date(2026, 3, 3)))
    day_after = await collect(marketplace.search("Abidjan", "", on_date=date(2026, 3, 4)))
    today = await collect(marketplace.search("Abidjan", "", on_date=date(2026, 3, 2)))

    assert [h.ride.id for h in on_day] == [ride.id]
    assert day_after == []
    assert today == []


@pytest.mark.asyncio
async def test_date_filter_uses_local_offset(make_marketplace):
    # UTC-10: 09:30 UTC on 3 March is still 2 March locally
    marketplace = make_marketplace(search_utc_offset_minutes=-600)
    await marketplace.create_ride(DRIVER, "Abidjan", "Bouaké", TOMORROW, 3, 2000)

    assert len(await collect(marketplace.search(on_date=date(2026, 3, 2)))) == 1
    assert await collect(marketplace.search(on_date=date(2026, 3, 3))) == []


@pytest.mark.asyncio
async def test_results_ordered_by_departure(marketplace):
    late = await marketplace.create_ride(
        DRIVER, "Abidjan", "Bouaké", TOMORROW + timedelta(hours=6), 2, 2000
    )
    early = await marketplace.create_ride(
        OTHER_DRIVER, "Abidjan", "Bouaké", TOMORROW, 4, 2500
    )

    hits = await collect(marketplace.search("Abidjan", "Bouaké"))
    assert [h.ride.id for h in hits] == [early.id, late.id]


@pytest.mark.asyncio
async def test_paging_walks_every_ride_once(marketplace):
    created = []
    for hours in (0, 0, 1, 2, 3):
        ride = await marketplace.create_ride(
            DRIVER, "Abidjan", "Yamoussoukro", TOMORROW + timedelta(hours=hours), 3, 3500
        )
        created.append(ride)
    criteria = SearchCriteria("Abidjan", "Yamoussoukro")

    seen, cursor, pages = [], None, 0
    while True:
        page, cursor = await marketplace.search_page(criteria, cursor, limit=2)
        seen.extend(h.ride.id for h in page)
        pages += 1
        if cursor is None:
            break

    assert sorted(seen) == sorted(r.id for r in created)
    assert len(seen) == len(set(seen)) == 5
    assert pages == 3


@pytest.mark.asyncio
async def test_search_restarts_from_cursor(marketplace):
    for hours in range(4):
        await marketplace.create_ride(
            DRIVER, "Bouaké", "Korhogo", TOMORROW + timedelta(hours=hours), 3, 4000
        )
    criteria = SearchCriteria("Bouaké", "Korhogo")
    everything = await collect(marketplace.search("Bouaké", "Korhogo"))

    first_page, cursor = await marketplace.search_page(criteria, limit=2)
    rest = await collect(marketplace.search("Bouaké", "Korhogo", after=cursor))

    assert [h.ride.id for h in first_page + rest] == [h.ride.id for h in everything]


@pytest.mark.asyncio
async def test_ride_listed_until_it_departs(marketplace, ride, clock):
    clock.advance(days=1, hours=1, minutes=30)
    [hit] = await collect(marketplace.search("Abidjan", "Bouaké"))
    assert hit.ride.id == ride.id
    assert (await marketplace.request_booking(ride.id, "passenger-aya", 1)).seats_booked == 1

    clock.advance(seconds=1)
    assert await collect(marketplace.search("Abidjan", "Bouaké")) == []
