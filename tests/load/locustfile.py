from locust import HttpUser, task, between, events
import os
import random
import time
import requests
import logging
from requests.exceptions import RequestException

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

# Session cookies are issued outside this service; pass pre-signed tokens in.
COOKIE_NAME = os.getenv("SESSION_COOKIE_NAME", "session")
BUYER_TOKEN = os.getenv("LOAD_BUYER_TOKEN", "")
STORE_TOKEN = os.getenv("LOAD_STORE_TOKEN", "")

ADDRESS = {
    "name": "Load Tester",
    "street1": "1 Main St",
    "city": "New York",
    "state": "NY",
    "postal_code": "10001",
    "country": "US",
}


def seed_listings(host, count=10):
    """Create and publish one-of-a-kind listings through the store API."""
    cookies = {COOKIE_NAME: STORE_TOKEN}
    run = int(time.time())
    for i in range(count):
        payload = {
            "sku": f"LOAD-{run}-{i}",
            "title": f"Load Test Bag {i}",
            "brand": "Load Test",
            "price_cents": 100000 + i * 500,
        }
        try:
            resp = requests.post(f"{host}/store/products", json=payload, cookies=cookies, timeout=5)
            if resp.status_code != 201:
                logger.warning(f"Could not create {payload['sku']}: {resp.status_code} - {resp.text}")
                continue
            product_id = resp.json()["id"]
            requests.put(
                f"{host}/store/products/{product_id}", json={"status": "ACTIVE"}, cookies=cookies, timeout=5
            )
        except RequestException as e:
            logger.warning(f"Could not create {payload['sku']}: {e}")


# Read:checkout ratio is roughly 11:1. Every listing is a single item, so
# concurrent checkouts on one product must yield exactly one 201 and 409s
# for everyone else.

@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    host = environment.host or "http://127.0.0.1:8000"
    if not STORE_TOKEN:
        logger.info("LOAD_STORE_TOKEN not set, using existing listings")
        return
    logger.info("Publishing listings for load test...")
    seed_listings(host)
    logger.info("Listings ready. Starting load test...")


class WebsiteUser(HttpUser):
    wait_time = between(0.5, 2.0)

    def on_start(self):
        if BUYER_TOKEN:
            self.client.cookies.set(COOKIE_NAME, BUYER_TOKEN)

    @task(8)
    def get_products(self):
        page = random.randint(1, 3)
        size = random.choice([5, 10, 20])
        with self.client.get(f"/products?page={page}&size={size}", name="GET /products", catch_response=True) as resp:
            if resp.status_code != 200:
                resp.failure(f"unexpected status {resp.status_code}")

    @task(3)
    def get_product_detail(self):
        items = self._first_page()
        if not items:
            return
        product = random.choice(items)
        with self.client.get(f"/products/{product['id']}", name="GET /products/{id}", catch_response=True) as resp:
            # 404 is fine: the item may have sold between the two requests
            if resp.status_code not in (200, 404):
                resp.failure(f"unexpected status {resp.status_code}")

    @task(1)
    def checkout(self):
        if not BUYER_TOKEN:
            return
        items = self._first_page()
        if not items:
            return
        product = items[random.randint(0, min(len(items) - 1, 9))]
        payload = {"product_id": product["id"], "shipping_address": ADDRESS}
        with self.client.post("/checkout", json=payload, name="POST /checkout", catch_response=True) as resp:
            if resp.status_code not in (201, 409):
                resp.failure(f"checkout unexpected status {resp.status_code}")

    def _first_page(self):
        with self.client.get("/products?page=1&size=10", name="GET /products/first", catch_response=True) as r:
            if r.status_code != 200:
                r.failure(f"list failed {r.status_code}")
                return []
            return r.json().get("items") or []
