from datetime import datetime, timedelta, timezone

import pytest

from listing_walker.config import MAX_ITEMS_LIMIT, HumanizeConfig, Job, JobConfig, SelectorConfig
from listing_walker.errors import JobValidationError


def test_humanize_defaults_and_camel_case_partial_dict():
    config = HumanizeConfig.from_dict({"scrollChance": 0.5, "breakAfterN": 4, "unknownKey": 1})
    assert config.scroll_chance == 0.5
    assert config.break_after_n == 4
    assert config.reading_speed_wpm == 230
    assert config.validate() == []


def test_humanize_validation_reports_each_problem():
    config = HumanizeConfig(scroll_chance=1.5, min_nav_delay=2000, max_nav_delay=1000)
    errors = config.validate()
    assert any("scroll_chance" in e for e in errors)
    assert any("min_nav_delay" in e for e in errors)


def test_selector_config_legacy_detail_keys():
    selectors = SelectorConfig.from_dict({"detailTitle": "h1.t", "detailPrice": ".p", "listingContainer": ".c"})
    assert selectors.title == "h1.t"
    assert selectors.price == ".p"
    assert selectors.listing_container == ".c"
    assert selectors.to_dict() == {"listing_container": ".c", "title": "h1.t", "price": ".p"}


def test_job_config_url_alias_and_cap():
    config = JobConfig.from_dict({"url": "https://www.sahibinden.com/x", "maxItems": 5000,
                                  "humanize": {"warmup": True}})
    assert config.anchor_resource == "https://www.sahibinden.com/x"
    assert config.max_items == MAX_ITEMS_LIMIT
    assert config.humanize.warmup is True
    assert config.require_phone is False


def test_job_config_collects_all_errors():
    with pytest.raises(JobValidationError) as exc:
        JobConfig.from_dict({"url": "not a url", "maxItems": 0, "selectors": "nope"})
    assert len(exc.value.errors) == 3
    assert str(exc.value).startswith("Invalid job:")


def test_job_requires_id_token_and_config():
    with pytest.raises(JobValidationError) as exc:
        Job.from_dict({"config": {"url": "https://www.sahibinden.com/x"}})
    assert "Job must have a valid ID" in exc.value.errors
    assert "Job must have a valid token" in exc.value.errors


def test_expired_job_rejected():
    past = (datetime.now(timezone.utc) - timedelta(minutes=5)).isoformat().replace("+00:00", "Z")
    with pytest.raises(JobValidationError) as exc:
        Job.from_dict({"id": "j", "token": "t", "expiresAt": past,
                       "config": {"url": "https://www.sahibinden.com/x"}})
    assert exc.value.errors == ["Job has expired"]


def test_valid_job():
    future = (datetime.now(timezone.utc) + timedelta(hours=1)).isoformat()
    job = Job.from_dict({"id": "j", "token": "t", "expires_at": future,
                         "config": {"anchorResource": "https://www.sahibinden.com/x", "requirePhone": True}})
    assert job.config.require_phone is True
    assert job.config.max_items == 10


def test_job_config_urls_are_normalized_deduplicated_and_capped():
    config = JobConfig.from_dict({
        "url": "https://www.sahibinden.com/satilik-daire/istanbul",
        "maxItems": 2,
        "urls": [
            "/ilan/emlak-konut-satilik-daire-100000004/detay?utm_source=feed",
            "https://www.sahibinden.com/ilan/emlak-konut-satilik-daire-100000004/detay#photos",
            "https://WWW.sahibinden.com/ilan/emlak-konut-satilik-daire-100000002/detay",
            "https://www.sahibinden.com/ilan/emlak-konut-satilik-daire-100000003/detay",
        ],
    })
    assert config.urls == [
        "https://www.sahibinden.com/ilan/emlak-konut-satilik-daire-100000004/detay",
        "https://www.sahibinden.com/ilan/emlak-konut-satilik-daire-100000002/detay",
    ]


def test_job_config_rejects_bad_urls():
    with pytest.raises(JobValidationError) as exc:
        JobConfig.from_dict({"url": "https://www.sahibinden.com/x", "urls": ["mailto:a@b.c", 42]})
    assert len(exc.value.errors) == 2
    with pytest.raises(JobValidationError):
        JobConfig.from_dict({"url": "https://www.sahibinden.com/x", "urls": "https://www.sahibinden.com/ilan/1"})
