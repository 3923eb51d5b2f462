from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from freight_quote.models import AuditAction, AuditLog, QuoteRequest, Rate
from freight_quote.models.base import BaseModel
from freight_quote.schemas import RateSearchRequest
from freight_quote.services.quote_persistence import persist_quote, plan_quote, write_quote
from freight_quote.services.response_normalizer import normalize_rates


def setup_sessionmaker(create_tables=True):
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    if create_tables:
        BaseModel.metadata.create_all(engine)
    return sessionmaker(bind=engine, expire_on_commit=False)


def _plan(n_rates=5):
    request = RateSearchRequest.model_validate({
        "origin": {"postalCode": "60601"},
        "destination": {"postalCode": "30301"},
        "lines": [{"weight": 500}],
        "modes": ["LTL"],
    })
    rates = normalize_rates(
        [{"rateId": f"p-{i}", "carrierName": f"Carrier {i}", "totalCost": 100 - i} for i in range(n_rates)]
    )
    return plan_quote("acme", "u1", request, ["LTL"], rates)


def test_plan_mints_distinct_ids():
    plan = _plan(3)
    internal = [p.internal_id for p in plan.rates]
    assert len(set(internal)) == 3
    assert plan.quote_id not in internal
    assert set(plan.rate_id_map) == {"p-0", "p-1", "p-2"}


def test_rates_written_in_chunks():
    Session = setup_sessionmaker()
    db = Session()
    commits = []
    event.listen(db, "after_commit", lambda session: commits.append(1))

    plan = _plan(5)
    write_quote(db, plan, chunk_size=2)

    # quote row, then 3 rate chunks (2 + 2 + 1)
    assert len(commits) == 4
    quote = db.get(QuoteRequest, plan.quote_id)
    assert quote.origin_postal == "60601"
    assert quote.modes == ["LTL"]
    assert quote.request_payload_json["origin"]["postalCode"] == "60601"
    stored = {r.id: r for r in db.query(Rate).all()}
    assert set(stored) == {p.internal_id for p in plan.rates}
    for planned in plan.rates:
        assert stored[planned.internal_id].provider_rate_id == planned.rate.id


def test_persist_quote_records_audit():
    Session = setup_sessionmaker()
    plan = _plan(2)
    assert persist_quote(plan, session_factory=Session) is True
    db = Session()
    audit = db.query(AuditLog).one()
    assert audit.action == AuditAction.GET_RATES
    assert audit.metadata_json["quoteRequestId"] == plan.quote_id
    assert audit.metadata_json["ratesCount"] == 2


def test_persist_failure_is_swallowed():
    # No tables: every write fails
    Session = setup_sessionmaker(create_tables=False)
    assert persist_quote(_plan(2), session_factory=Session) is False
