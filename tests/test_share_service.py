import asyncio
from datetime import timedelta

import pytest
from sqlalchemy import func, select

from app.exceptions import AuthorizationError, NotFoundError, RateLimitedError, ValidationError
from app.models.share import Share, ShareAccess
from app.schemas.options import ShareSettings
from app.schemas.share import ShareCreate, ShareUpdate
from app.services.share import ShareService
from app.services.share_session import InMemoryShareSessionStore, share_session_key
from app.utils.clock import utcnow
from app.utils.security import verify_secret


def make_service(db, counter, session_store=None):
    return ShareService(db, rate_limiter=counter, session_store=session_store)


def public_request(generation, **overrides):
    data = {"shareable_id": generation.id, "share_type": "public", "title": "My Logos"}
    data.update(overrides)
    return ShareCreate(**data)


async def test_public_share_can_be_accessed_and_counts_views(db, owner, generation, counter):
    service = make_service(db, counter)
    share = await service.create_share(owner, public_request(generation))
    await db.commit()

    assert share.password_hash is None
    assert share.is_active
    assert share.view_count == 0

    result = await service.validate_share_access(share.uuid)
    assert result.success
    assert not result.requires_password

    await service.record_share_access(share, "203.0.113.5", "Mozilla/5.0", None)
    await db.commit()
    assert share.view_count == 1
    assert share.last_viewed_at is not None


async def test_password_share_requires_correct_password(db, owner, generation, counter):
    service = make_service(db, counter)
    share = await service.create_share(
        owner, public_request(generation, share_type="password_protected", password="secret123")
    )
    await db.commit()

    assert share.password_hash is not None
    assert verify_secret("secret123", share.password_hash)

    missing = await service.validate_share_access(share.uuid)
    assert not missing.success
    assert missing.requires_password
    assert missing.error == "Password required"

    wrong = await service.validate_share_access(share.uuid, password="wrong")
    assert not wrong.success
    assert wrong.error == "Invalid password"

    right = await service.validate_share_access(share.uuid, password="secret123")
    assert right.success


async def test_session_flag_unlocks_password_share(db, owner, generation, counter):
    share = await make_service(db, counter).create_share(
        owner, public_request(generation, share_type="password_protected", password="secret123")
    )
    await db.commit()

    store = InMemoryShareSessionStore()
    service = make_service(db, counter, session_store=store)
    assert not (await service.validate_share_access(share.uuid)).success

    store.set(share_session_key(share.uuid), True)
    assert (await service.validate_share_access(share.uuid)).success


async def test_unknown_inactive_and_expired_shares_are_not_accessible(db, owner, generation, counter):
    service = make_service(db, counter)
    assert (await service.validate_share_access("no-such-uuid")).error == "Share not found or inactive"

    share = await service.create_share(owner, public_request(generation))
    await service.deactivate_share(share, owner)
    await db.commit()
    assert (await service.validate_share_access(share.uuid)).error == "Share not found or inactive"

    expiring = await service.create_share(
        owner, public_request(generation, expires_at=utcnow() + timedelta(days=1))
    )
    await db.commit()
    result = await service.validate_share_access(expiring.uuid, now=utcnow() + timedelta(days=2))
    assert not result.success
    assert result.error == "Share has expired"


async def test_create_share_validation_errors(db, owner, other_user, generation, counter):
    service = make_service(db, counter)

    with pytest.raises(ValidationError) as exc:
        await service.create_share(owner, public_request(generation, share_type="private"))
    assert "share_type" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await service.create_share(owner, public_request(generation, share_type="password_protected"))
    assert "password" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await service.create_share(
            owner, public_request(generation, share_type="password_protected", password="abc")
        )
    assert "password" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await service.create_share(other_user, public_request(generation))
    assert "shareable_id" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await service.create_share(owner, public_request(generation, shareable_type="album"))
    assert "shareable_type" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await service.create_share(owner, public_request(generation, expires_at=utcnow() - timedelta(hours=1)))
    assert "expires_at" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await service.create_share(owner, public_request(generation, expires_at=utcnow() + timedelta(days=400)))
    assert "expires_at" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await service.create_share(owner, public_request(generation, title="x" * 256))
    assert "title" in exc.value.errors

    with pytest.raises(ValidationError) as exc:
        await service.create_share(owner, public_request(generation, title="Logos <3 & more; {json}"))
    assert "title" in exc.value.errors

    assert (await db.execute(select(func.count(Share.id)))).scalar_one() == 0


async def test_title_and_description_are_sanitized(db, owner, generation, counter):
    share = await make_service(db, counter).create_share(
        owner,
        public_request(
            generation,
            title="  <b>Brand</b> Options ",
            description='Pick one: "A" & <script>alert(1)</script>B',
        ),
    )
    assert share.title == "Brand Options"
    assert share.description == "Pick one: &quot;A&quot; &amp; alert(1)B"


async def test_share_creation_is_rate_limited_per_owner(db, owner, other_user, generation, counter):
    service = make_service(db, counter)
    for _ in range(10):
        await service.create_share(owner, public_request(generation))

    with pytest.raises(RateLimitedError) as exc:
        await service.create_share(owner, public_request(generation))
    assert 0 < exc.value.retry_after <= 3600

    # other owners are unaffected
    with pytest.raises(ValidationError):
        await service.create_share(other_user, public_request(generation))


async def test_update_merges_only_provided_fields(db, owner, other_user, generation, counter):
    service = make_service(db, counter)
    share = await service.create_share(
        owner,
        public_request(generation, description="Keep me", settings=ShareSettings(show_logos=True)),
    )

    updated = await service.update_share(
        share, owner, ShareUpdate(title="New Title", settings=ShareSettings(show_domain_status=False))
    )
    assert updated.title == "New Title"
    assert updated.description == "Keep me"
    assert updated.share_settings.show_logos is True
    assert updated.share_settings.show_domain_status is False
    assert updated.share_type == "public"

    cleared = await service.update_share(share, owner, ShareUpdate(description=None))
    assert cleared.description is None
    assert cleared.title == "New Title"

    with pytest.raises(AuthorizationError):
        await service.update_share(share, other_user, ShareUpdate(title="Hijack"))


async def test_get_owned_share(db, owner, other_user, generation, counter):
    service = make_service(db, counter)
    share = await service.create_share(owner, public_request(generation))

    assert (await service.get_owned_share(share.id, owner)).uuid == share.uuid
    with pytest.raises(AuthorizationError):
        await service.get_owned_share(share.id, other_user)
    with pytest.raises(NotFoundError):
        await service.get_owned_share(share.id + 100, owner)


async def test_concurrent_accesses_are_all_counted(session_maker, db, owner, generation, counter):
    share = await make_service(db, counter).create_share(owner, public_request(generation))
    await db.commit()

    async def visit(n: int) -> None:
        async with session_maker() as session:
            local = await session.get(Share, share.id)
            await session.commit()
            await ShareService(session, rate_limiter=counter).record_share_access(
                local, f"198.51.100.{n}", "Mozilla/5.0", None
            )
            await session.commit()

    await asyncio.gather(*(visit(n) for n in range(10)))

    async with session_maker() as session:
        fresh = await session.get(Share, share.id)
        events = (await session.execute(
            select(func.count(ShareAccess.id)).where(ShareAccess.share_id == share.id)
        )).scalar_one()
    assert fresh.view_count == 10
    assert events == 10


async def test_share_analytics(db, owner, generation, counter):
    service = make_service(db, counter)
    share = await service.create_share(owner, public_request(generation))
    now = utcnow()

    await service.record_share_access(share, "10.0.0.1", "Mozilla/5.0", "https://twitter.com/", now=now)
    await service.record_share_access(share, "10.0.0.1", "Mozilla/5.0", "https://twitter.com/", now=now)
    await service.record_share_access(share, "10.0.0.2", "Mozilla/5.0", None, now=now - timedelta(days=10))

    analytics = await service.get_share_analytics(share, now=now)
    assert analytics["total_views"] == 3
    assert analytics["unique_visitors"] == 2
    assert analytics["recent_views"] == 2
    assert analytics["today_views"] == 2
    assert analytics["peak_day"] == {"date": now.date().isoformat(), "views": 2}
    assert analytics["referrer_stats"] == [{"referrer": "https://twitter.com/", "views": 2}]
    assert analytics["security"] == {
        "unique_ips_24h": 1,
        "total_accesses_24h": 2,
        "top_ips": [{"ip_address": "10.0.0.1", "accesses": 2}],
    }


async def test_bot_access_is_flagged(db, owner, generation, counter):
    service = make_service(db, counter)
    share = await service.create_share(owner, public_request(generation))

    flags = await service.record_share_access(share, "10.0.0.1", "python-requests/2.31", None)
    assert flags.bot
    flags = await service.record_share_access(share, "10.0.0.1", "Mozilla/5.0 (Macintosh)", None)
    assert not flags.bot


async def test_social_media_metadata_respects_settings(db, owner, generation, counter):
    service = make_service(db, counter)
    share = await service.create_share(
        owner, public_request(generation, description="Fresh designs", settings=ShareSettings(show_title=False))
    )

    meta = service.generate_social_media_metadata(share, "https://brand.example/")
    assert meta["og:title"] == "Shared Logo Designs"
    assert meta["og:description"] == "Fresh designs"
    assert meta["og:url"] == f"https://brand.example/share/{share.uuid}"
    assert meta["twitter:card"] == "summary_large_image"


async def test_user_shares_listing(db, owner, generation, counter):
    service = make_service(db, counter)
    for title in ("Alpha logos", "Beta logos", "Gamma ideas"):
        await service.create_share(owner, public_request(generation, title=title))
    await service.create_share(
        owner, public_request(generation, title="Secret", share_type="password_protected", password="secret123")
    )

    page = await service.get_user_shares(owner, page=1, per_page=2)
    assert page.total == 4
    assert len(page.items) == 2
    assert page.last_page == 2
    assert page.has_more_pages

    found = await service.get_user_shares(owner, search="LOGOS")
    assert {s.title for s in found.items} == {"Alpha logos", "Beta logos"}

    protected = await service.get_user_shares(owner, share_type="password_protected")
    assert [s.title for s in protected.items] == ["Secret"]


async def test_retention(db, owner, generation, counter):
    service = make_service(db, counter)
    now = utcnow()
    expired = await service.create_share(owner, public_request(generation, expires_at=now + timedelta(hours=1)))
    await service.record_share_access(expired, "10.0.0.1", None, None, now=now - timedelta(days=100))
    await db.commit()

    later = now + timedelta(hours=2)
    assert await service.deactivate_expired_shares(now=later) == 1
    assert await service.deactivate_expired_shares(now=later) == 0
    assert await service.purge_old_accesses(now=later) == 1
    await db.commit()

    assert await service.purge_inactive_shares(now=later) == 0
    assert await service.purge_inactive_shares(now=later + timedelta(days=31)) == 1
    await db.commit()
    assert await service.get_share_by_uuid(expired.uuid) is None
