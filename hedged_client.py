import asyncio, logging, os, time, httpx
import numpy as np

from loadgen import PERCENTILES, compare_to_profile

root_url = os.environ.get('LATENCY_TARGET', 'http://127.0.0.1:8080')


async def one_request(client, delay):
    if delay: await asyncio.sleep(delay)
    r = await client.get(f'{root_url}/simulate_latency')
    r.raise_for_status()
    return r


async def hedged_call(client, hedge_ms=30):
    """Time one logical request; with ``hedge_ms`` set, a second leg fires
    after that many ms and the first successful leg wins.

    A failed leg never wins. If every leg fails the last error is raised.
    """
    t0 = time.perf_counter()
    legs = {asyncio.create_task(one_request(client, 0))}
    if hedge_ms is not None:
        legs.add(asyncio.create_task(one_request(client, hedge_ms / 1000.0)))
    body, error = None, None
    try:
        while legs and body is None:
            done, legs = await asyncio.wait(legs, return_when=asyncio.FIRST_COMPLETED)
            for leg in done:
                try:
                    body = leg.result().json()
                    break
                except httpx.HTTPError as e:
                    logging.warning(f'leg failed: {e}')
                    error = e
    finally:
        for leg in legs:
            leg.cancel()
        for leg in legs:
            try:
                await leg
            except (asyncio.CancelledError, httpx.HTTPError):
                pass
    if body is None:
        raise error
    return (time.perf_counter() - t0) * 1000.0, body


def latency_percentiles(samples):
    """Profile-shaped percentiles (p50..p99, max) of ``samples`` in ms."""
    arr = np.asarray(samples, dtype=float)
    out = {key: float(np.percentile(arr, q)) for key, q in PERCENTILES}
    out['max'] = float(arr.max())
    return out


async def compare(client, n=200, hedge_ms=30):
    """Run ``n`` plain and ``n`` hedged calls and set both tails against the
    served profile."""
    profile = (await client.get(f'{root_url}/profile')).json()
    runs = {}
    for name, hedge in (('unhedged', None), ('hedged', hedge_ms)):
        ls = []
        for _ in range(n):
            l, _body = await hedged_call(client, hedge)
            ls.append(l)
        summary = latency_percentiles(ls)
        runs[name] = {
            'summary': summary,
            'vs_profile': compare_to_profile(summary, profile),
        }
    return profile, runs


async def demo(n=200, hedge_ms=30):
    async with httpx.AsyncClient(timeout=10.0) as client:
        profile, runs = await compare(client, n, hedge_ms)
    print(f'profile {profile}')
    for name, run in runs.items():
        for key, v in run['summary'].items():
            delta = run['vs_profile'].get(key)
            print(f'{name:9} {key:4} {v:9.2f}ms' + (f'  ({delta:+.2f} vs profile)' if delta is not None else ''))


if __name__ == '__main__':
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    for service in ['httpx', 'httpcore']:
        logging.getLogger(service).setLevel(logging.WARNING)
    asyncio.run(demo())
