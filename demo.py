# demo.py
#!/usr/bin/env python3
"""
Spielt eine kurze Checkout-Session gegen den lokalen Sink ab.

    TRACKER_APP_KEY=demo python demo.py
"""
import logging
import time
from pathlib import Path

from tracker.client import AnalyticsTracker
from tracker.config import TrackerConfig
from tracker.page import Page

BASE_DIR = Path(__file__).resolve().parent
DEMO_HTML = BASE_DIR / "demo" / "checkout.html"
CATALOG_PATH = BASE_DIR / "catalog" / "components.json"


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    config = TrackerConfig.from_env(
        app_key="demo-app",
        catalog_path=str(CATALOG_PATH),
        flush_interval_ms=2000,
    )
    page = Page(
        DEMO_HTML.read_text(encoding="utf-8"),
        "http://localhost:3000/checkout?plan=pro&utm_source=demo",
        document_height=2400,
    )

    tracker = AnalyticsTracker(config, page)
    tracker.start()
    print(f"[INFO] Tracker läuft: user={tracker.user_id} session={tracker.session_id}")

    tracker.focus_in(page.query("#seats"))
    tracker.focus_in(page.query("#email"))
    tracker.click(page.query("#checkout-continue"))
    tracker.click(page.query("tr[data-task-id] button"))

    for y in (400, 900, 1600):
        tracker.scroll(y)
        time.sleep(0.6)

    paywall = page.query("#paywall")
    paywall["style"] = "display: block"
    tracker.attribute_changed(paywall, "style")
    time.sleep(0.1)
    tracker.submit(page.query("#upgrade-form"))

    tracker.navigate("http://localhost:3000/checkout/success")
    tracker.flush()
    print(f"[INFO] Queue nach Flush: {len(tracker.delivery)} Events")

    tracker.unload()


if __name__ == "__main__":
    main()
