import asyncio

from conftest import make_order
from ticket_bridge.documents import Document, build_receipt
from ticket_bridge.drivers import BrowserDriver, Destination


class Recorder:
    def __init__(self, result=True):
        self.opened = []
        self.sleeps = []
        self.result = result

    def open(self, uri):
        self.opened.append(uri)
        return self.result

    async def sleep(self, seconds):
        self.sleeps.append(seconds)


def test_each_copy_opens_its_own_page(tmp_path):
    rec = Recorder()
    driver = BrowserDriver(stagger=1.5, spool_dir=tmp_path, opener=rec.open, sleep=rec.sleep)

    result = asyncio.run(driver.deliver(Destination("receipt"), build_receipt(make_order()), copies=2))

    assert result.success
    assert len(rec.opened) == 2
    assert rec.opened[0] != rec.opened[1]
    assert rec.sleeps == [1.5]
    pages = sorted(tmp_path.glob("receipt-*.html"))
    assert len(pages) == 2
    assert "window.print()" in pages[0].read_text(encoding="utf-8")


def test_single_copy_does_not_wait(tmp_path):
    rec = Recorder()
    driver = BrowserDriver(spool_dir=tmp_path, opener=rec.open, sleep=rec.sleep)

    asyncio.run(driver.deliver(Destination("kitchen"), build_receipt(make_order())))

    assert rec.sleeps == []
    assert [p.name.split("-")[0] for p in tmp_path.iterdir()] == ["kitchen"]


def test_empty_document_is_not_printed(tmp_path):
    rec = Recorder()
    driver = BrowserDriver(spool_dir=tmp_path, opener=rec.open, sleep=rec.sleep)

    result = asyncio.run(driver.deliver(Destination("kitchen"), Document("KITCHEN ORDER")))

    assert not result.success
    assert result.error == "Nothing to print"
    assert rec.opened == []


def test_missing_browser_still_counts_as_sent(tmp_path):
    rec = Recorder(result=False)
    driver = BrowserDriver(spool_dir=tmp_path, opener=rec.open, sleep=rec.sleep)

    result = asyncio.run(driver.deliver(Destination("receipt"), build_receipt(make_order())))

    assert result.success
    assert result.endpoint == str(tmp_path)
