import asyncio

from tcf_validator.db import ResultStore
from tcf_validator.models import SiteValidationResult, ValidationRun


def test_store_round_trip(tmp_path):
    found = SiteValidationResult(
        site="https://www.example.co.uk", vendor_id=755, has_tcf=True, cmp_id=300, vendor_is_present=True,
    ).finalize()
    failed = SiteValidationResult(
        site="https://silent.example.com", vendor_id=755, has_tcf=True, error="TCF ping timeout",
    ).finalize()
    run = ValidationRun(vendor_id=755, started_at="t0", completed_at="t1", results=[found, failed])

    async def scenario():
        store = ResultStore(tmp_path / "nested" / "history.db")
        await store.connect()
        try:
            run_id = await store.start_run(755, run.started_at)
            for result in run.results:
                await store.save_result(run_id, result)
            await store.finish_run(run_id, run)
            return (
                await store.last_result("https://silent.example.com", 755),
                await store.last_result("https://unknown.example.com", 755),
                await store.get_stats(),
                await store.get_stats(vendor_id=1),
            )
        finally:
            await store.close()

    stored, missing, stats, other_vendor = asyncio.run(scenario())

    assert stored.has_tcf is True
    assert stored.cmp_id is None
    assert stored.vendor_is_present is None
    assert stored.error == "TCF ping timeout"
    assert missing is None
    assert stats == {
        "total_runs": 1,
        "total_results": 2,
        "distinct_domains": 2,
        "vendor_found": 1,
        "failed": 1,
    }
    assert other_vendor["total_results"] == 0
