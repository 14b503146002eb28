import asyncio
import logging
import os
import time
import httpx
from hdrh.histogram import HdrHistogram  # pip install -U hdrhistogram

root_url = os.environ.get('LATENCY_TARGET', 'http://127.0.0.1:8080')
log_every_n = 10

PERCENTILES = (('p50', 50), ('p75', 75), ('p90', 90), ('p95', 95), ('p99', 99))

for service in ['httpx', 'httpcore']:  # 'httpcore.http11':
    logging.getLogger(service).setLevel(logging.WARNING)


def percentile_summary(hist, unit_divisor=1.0):
    """Profile-shaped view of a histogram: p50..p99 plus max, in ms."""
    summary = {
        key: hist.get_value_at_percentile(q) / unit_divisor
        for key, q in PERCENTILES
    }
    summary['max'] = hist.get_max_value() / unit_divisor
    return summary


def compare_to_profile(summary, profile):
    return {
        key: summary[key] - profile[key]
        for key in summary
        if key in profile
    }


def _fmt(summary):
    return ' '.join(f'{k}={v:.2f}ms' for k, v in summary.items())


async def blast(rate=50, seconds=60):
    url = f'{root_url}/simulate_latency'
    interval = 1.0 / rate
    start = time.perf_counter()
    end   = start + seconds
    hist  = HdrHistogram(1, 60_000_000, 3)  # client view, 1us..60s, 3 sig figs
    slept = HdrHistogram(1, 60_000_000, 3)  # server-reported sleep, us
    pending = set()
    async with httpx.AsyncClient(timeout=10.0) as client:
        try:
            r = await client.get(f'{root_url}/profile', timeout=2.0)
            profile = r.json()
            logging.info(f'target profile: {profile}')
        except Exception as e:
            logging.warning(f'profile fetch failed: {e}')
            profile = {}

        async def one(i, scheduled):
            try:
                if i % log_every_n == 0:
                    logging.debug(f'GET /simulate_latency scheduled_at={scheduled:.6f}')
                r = await client.get(url)
                r.raise_for_status()
                t1 = time.perf_counter()
                # measured from schedule, not send, so a slow server cannot hide its tail
                hist.record_value(max(1, int((t1 - scheduled) * 1_000_000)))
                body = r.json()
                slept.record_value(max(1, int(body['actual_slept_ms'] * 1000)))
                if i % log_every_n == 0:
                    logging.debug(f'/simulate_latency -> {r.status_code} {body["target_latency_band_label"]}')
            except Exception:
                logging.warning('request failed', exc_info=True)

        i = 0
        while True:
            scheduled = start + i * interval
            now = time.perf_counter()

            if now >= end:
                break

            if now < scheduled:
                await asyncio.sleep(scheduled - now)

            task = asyncio.create_task(one(i, scheduled))
            pending.add(task)
            task.add_done_callback(pending.discard)

            if i % log_every_n == 0:
                elapsed = time.perf_counter() - start
                approx_sends_per_sec = i / elapsed if elapsed > 0 else 0.0
                logging.info(f'sent={i} elapsed={elapsed:.2f}s approx_qps={approx_sends_per_sec:.1f} in_flight={len(pending)}')

            i += 1

        if pending:
            await asyncio.gather(*pending)

    observed = percentile_summary(hist, 1000.0)
    print(f'n={hist.get_total_count()} client {_fmt(observed)}')
    print(f'n={slept.get_total_count()} server {_fmt(percentile_summary(slept, 1000.0))}')
    if profile:
        print(f'client - profile: {_fmt(compare_to_profile(observed, profile))}')

    with open('latency.hdr', 'wb') as f:
        f.write(hist.encode())

    logging.info('blast complete, histogram written to latency.hdr')


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.DEBUG,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    asyncio.run(blast())
