"""Baseline columns present in every newly created events table."""

from __future__ import annotations

from tablewright.fields import Field, PrimitiveKind

LOAD_TSTAMP_COLUMN = "load_tstamp"

_S = PrimitiveKind.STRING
_I = PrimitiveKind.INTEGER
_D = PrimitiveKind.DOUBLE
_B = PrimitiveKind.BOOLEAN
_T = PrimitiveKind.TIMESTAMP


def _column(name: str, kind: PrimitiveKind, *, nullable: bool = True) -> Field:
    return Field.primitive(name, kind, nullable=nullable)


ATOMIC_FIELDS: tuple[Field, ...] = (
    # Application
    _column("app_id", _S),
    _column("platform", _S),
    # Timestamps
    _column("etl_tstamp", _T),
    _column("collector_tstamp", _T, nullable=False),
    _column("dvce_created_tstamp", _T),
    _column("dvce_sent_tstamp", _T),
    _column("derived_tstamp", _T),
    _column("true_tstamp", _T),
    # Event
    _column("event", _S),
    _column("event_id", _S, nullable=False),
    _column("txn_id", _I),
    _column("event_vendor", _S),
    _column("event_name", _S),
    _column("event_format", _S),
    _column("event_version", _S),
    _column("event_fingerprint", _S),
    # Versioning
    _column("name_tracker", _S),
    _column("v_tracker", _S),
    _column("v_collector", _S, nullable=False),
    _column("v_etl", _S, nullable=False),
    # User
    _column("user_id", _S),
    _column("user_ipaddress", _S),
    _column("user_fingerprint", _S),
    _column("domain_userid", _S),
    _column("domain_sessionidx", _I),
    _column("domain_sessionid", _S),
    _column("network_userid", _S),
    # Location
    _column("geo_country", _S),
    _column("geo_region", _S),
    _column("geo_city", _S),
    _column("geo_zipcode", _S),
    _column("geo_latitude", _D),
    _column("geo_longitude", _D),
    _column("geo_timezone", _S),
    # Page
    _column("page_url", _S),
    _column("page_title", _S),
    _column("page_referrer", _S),
    _column("refr_medium", _S),
    _column("refr_source", _S),
    _column("refr_term", _S),
    # Marketing
    _column("mkt_medium", _S),
    _column("mkt_source", _S),
    _column("mkt_term", _S),
    _column("mkt_content", _S),
    _column("mkt_campaign", _S),
    # Browser and device
    _column("useragent", _S),
    _column("br_lang", _S),
    _column("br_cookies", _B),
    _column("br_viewwidth", _I),
    _column("br_viewheight", _I),
    _column("os_timezone", _S),
    _column("dvce_screenwidth", _I),
    _column("dvce_screenheight", _I),
    _column("doc_charset", _S),
    # Loader
    _column(LOAD_TSTAMP_COLUMN, _T),
)
