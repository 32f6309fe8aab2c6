"""Simple concurrency demo: four riders race to join a pool that has one seat taken.
This runs in-process and doesn't require the server to be started separately.
Three joins fill the pool; the last one is turned away because the pool is ready.
Run: python concurrency_demo.py
"""
import asyncio
from main import app
from sample_data import seed
import httpx


async def run():
    seed()
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        first = await client.post("/api/kekepool/join", json={
            "user_name": "rider0", "vehicle_id": 1,
            "pickup_lat": 6.8928, "pickup_lng": 3.7183,
            "destination_name": "Library", "destination_lat": 6.8910, "destination_lng": 3.7240,
        })
        pool_id = first.json()["pool"]["id"]
        tasks = [
            client.post("/api/kekepool/join", json={
                "pool_id": pool_id, "user_name": f"rider{i}",
                "pickup_lat": 6.8928 + i * 0.001, "pickup_lng": 3.7183,
                "destination_name": "Library", "destination_lat": 6.8910, "destination_lng": 3.7240,
            })
            for i in range(1, 5)
        ]
        res = await asyncio.gather(*tasks)
        for r in res:
            print(r.status_code, r.json().get("message") or r.json().get("error"))


if __name__ == "__main__":
    asyncio.run(run())
