"""
Unit tests for record sources.
"""

import pytest

from feed_batcher.errors import SourceError
from feed_batcher.sources import IterableSource, XmlFeedSource

RSS_FEED = """<?xml version="1.0"?>
<rss version="2.0" xmlns:g="http://base.google.com/ns/1.0">
  <channel>
    <title>Test Feed</title>
    <item>
      <g:id>ITEM1</g:id>
      <title>Product 1</title>
      <g:description><![CDATA[ Description <b>1</b> ]]></g:description>
    </item>
    <item>
      <g:id>ITEM2</g:id>
      <title lang="en">Product 2</title>
      <g:description>Description 2</g:description>
    </item>
  </channel>
</rss>
"""

ATOM_FEED = """<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Atom Feed</title>
  <entry>
    <id>urn:1</id>
    <title>Entry One</title>
    <summary>First entry</summary>
  </entry>
</feed>
"""


def _write(tmp_path, name, content):
    p = tmp_path / name
    p.write_text(content, encoding="utf-8")
    return p


def test_rss_items_flattened_with_prefixes(tmp_path):
    src = XmlFeedSource(_write(tmp_path, "feed.xml", RSS_FEED))
    records = list(src)

    assert len(records) == 2
    assert records[0]["g:id"] == "ITEM1"
    assert records[0]["title"] == "Product 1"
    assert records[0]["g:description"] == " Description <b>1</b> "
    # attributes turn the value into a text holder
    assert records[1]["title"] == {"$text": "Product 2", "lang": "en"}
    assert src.records_read == 2


def test_atom_entries(tmp_path):
    records = list(XmlFeedSource(_write(tmp_path, "atom.xml", ATOM_FEED)))
    assert records == [{"id": "urn:1", "title": "Entry One", "summary": "First entry"}]


def test_malformed_xml_raises_source_error(tmp_path):
    bad = RSS_FEED.replace("</channel>", "")
    src = XmlFeedSource(_write(tmp_path, "bad.xml", bad))
    with pytest.raises(SourceError):
        list(src)


def test_missing_file_raises_source_error(tmp_path):
    with pytest.raises(SourceError):
        list(XmlFeedSource(tmp_path / "nope.xml"))


def test_paused_source_stops_producing(tmp_path):
    src = XmlFeedSource(_write(tmp_path, "feed.xml", RSS_FEED))
    it = iter(src)
    first = next(it)
    src.pause()
    assert src.paused
    assert list(it) == []

    src.resume()
    rest = list(src)
    assert first["g:id"] == "ITEM1"
    assert [r["g:id"] for r in rest] == ["ITEM2"]


def test_iterable_source_pause_resume():
    src = IterableSource([{"id": str(i)} for i in range(5)])
    it = iter(src)
    assert next(it) == {"id": "0"}
    src.pause()
    assert list(it) == []
    src.resume()
    assert [r["id"] for r in src] == ["1", "2", "3", "4"]


def test_emitted_items_detached_from_channel(tmp_path):
    items = "".join(
        f"<item><g:id>ID{i}</g:id><title>T{i}</title></item>" for i in range(50)
    )
    feed = RSS_FEED.replace("<title>Test Feed</title>", f"<title>Test Feed</title>{items}")
    src = XmlFeedSource(_write(tmp_path, "many.xml", feed))
    it = iter(src)

    next(it)
    channel = src._open[-1]
    assert channel.tag == "channel"

    assert len(list(it)) == 51
    assert channel.findall("item") == []


def test_end_of_stream_closes_file(tmp_path):
    src = XmlFeedSource(_write(tmp_path, "feed.xml", RSS_FEED))
    assert len(list(src)) == 2
    assert src.closed


def test_close_stops_early(tmp_path):
    src = XmlFeedSource(_write(tmp_path, "feed.xml", RSS_FEED))
    it = iter(src)
    next(it)
    handle = src._file

    src.close()

    assert handle.closed
    assert src.closed
    assert list(it) == []


def test_iterable_source_close_closes_generator():
    state = {"finished": False}

    def gen():
        try:
            yield {"id": "1"}
            yield {"id": "2"}
        finally:
            state["finished"] = True

    src = IterableSource(gen())
    next(iter(src))
    src.close()

    assert state["finished"]
    assert list(src) == []
