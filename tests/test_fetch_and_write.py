"""Unit tests for the page fetcher, the JSON writer and the per-year cycle.

HTTP is mocked at the ``requests.Session`` boundary; files go to ``tmp_path``.
"""

from __future__ import annotations

import dataclasses
import json
from unittest.mock import MagicMock

import pytest
import requests
from bs4 import BeautifulSoup

import sci_crawler
from sci_crawler import (
    FetchError,
    FetchedPage,
    Fetcher,
    Judgment,
    NotFoundError,
    output_path,
    scrape_year,
    write_json,
)

_PAGE_HTML = """
<html><body>
<div class="landmark_judgment_summary"><table>
  <tr><th>Sl. No.</th><th>Date</th><th>Case No.</th><th>Subject</th><th>Judgment Summary</th></tr>
  <tr><td>1</td><td>12-02-2019</td><td>A &amp; Ors. vs State</td><td>Criminal</td>
      <td>Bail <a href="/view-pdf/?diary_no=7&amp;type=j">View</a></td></tr>
</table></div>
</body></html>
"""


def _response(status: int = 200, text: str = _PAGE_HTML, url: str = "") -> MagicMock:
    resp = MagicMock()
    resp.status_code = status
    resp.reason = "OK" if status == 200 else "Service Unavailable"
    resp.text = text
    resp.url = url
    return resp


def _session(resp: MagicMock) -> MagicMock:
    session = MagicMock(spec=requests.Session)
    session.get.return_value = resp
    return session


class _StubFetcher:
    def __init__(self, html: str, url: str = "https://www.sci.gov.in/landmark-judgment-summaries/?judgment_year=2019"):
        self.html = html
        self.url = url
        self.calls: list[int] = []

    def fetch(self, year: int) -> FetchedPage:
        self.calls.append(year)
        return FetchedPage(self.url, BeautifulSoup(self.html, "lxml"))


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------


class TestFetcher:
    def test_page_url_template(self) -> None:
        fetcher = Fetcher(MagicMock(), base_url="https://www.sci.gov.in/")
        assert fetcher.page_url(2017) == "https://www.sci.gov.in/landmark-judgment-summaries/?judgment_year=2017"

    def test_fetch_ok_uses_final_url(self) -> None:
        session = _session(_response(url="https://www.sci.gov.in/redirected/"))
        page = Fetcher(session, timeout=12).fetch(2019)

        session.get.assert_called_once_with(
            "https://www.sci.gov.in/landmark-judgment-summaries/?judgment_year=2019",
            timeout=12,
            allow_redirects=True,
        )
        assert page.url == "https://www.sci.gov.in/redirected/"
        assert page.soup.find("table") is not None

    def test_fetch_falls_back_to_request_url(self) -> None:
        page = Fetcher(_session(_response(url=""))).fetch(2019)
        assert page.url.endswith("judgment_year=2019")

    @pytest.mark.parametrize("status", [201, 301, 404, 503])
    def test_non_200_raises(self, status: int) -> None:
        fetcher = Fetcher(_session(_response(status=status, text="down")))
        with pytest.raises(FetchError, match=str(status)):
            fetcher.fetch(2019)

    def test_fetched_page_is_read_only(self) -> None:
        page = Fetcher(_session(_response())).fetch(2019)
        with pytest.raises(dataclasses.FrozenInstanceError):
            page.url = "https://elsewhere.example/"  # type: ignore[misc]

    def test_transport_error_propagates(self) -> None:
        session = MagicMock(spec=requests.Session)
        session.get.side_effect = requests.ConnectionError("connection reset")
        with pytest.raises(requests.ConnectionError):
            Fetcher(session).fetch(2019)


# ---------------------------------------------------------------------------
# Writer
# ---------------------------------------------------------------------------


class TestWriteJson:
    def test_file_name_and_content(self, tmp_path) -> None:
        out = tmp_path / "out"
        judgments = [Judgment("01-01-2016", "X vs Y", "Tax", "S", "https://a.gov/v?x=1&y=2")]
        path = write_json(out, 2016, judgments)

        assert path == out / "sci_judgments_2016.json"
        text = path.read_text(encoding="utf-8")
        assert "x=1&y=2" in text
        assert "\\u0026" not in text
        assert text.endswith("\n")
        data = json.loads(text)
        assert list(data[0].keys()) == [
            "judgment_date",
            "cause_title_case_no",
            "subject",
            "judgment_summary",
            "pdf_link",
        ]

    def test_non_ascii_written_literally(self, tmp_path) -> None:
        path = write_json(tmp_path, 2020, [Judgment(subject="Sección 377 – Privacy")])
        assert "Sección 377 – Privacy" in path.read_text(encoding="utf-8")

    def test_failed_write_leaves_nothing(self, tmp_path, monkeypatch) -> None:
        def boom(*args, **kwargs):
            raise OSError("disk full")

        monkeypatch.setattr(sci_crawler.json, "dump", boom)
        out = tmp_path / "out"
        with pytest.raises(OSError):
            write_json(out, 2016, [Judgment(subject="x")])
        assert list(out.iterdir()) == []

    def test_overwrites_previous_output(self, tmp_path) -> None:
        write_json(tmp_path, 2016, [Judgment(subject="old")])
        path = write_json(tmp_path, 2016, [Judgment(subject="new")])
        assert json.loads(path.read_text(encoding="utf-8"))[0]["subject"] == "new"


# ---------------------------------------------------------------------------
# Year cycle
# ---------------------------------------------------------------------------


class TestScrapeYear:
    def test_writes_records(self, tmp_path) -> None:
        fetcher = _StubFetcher(_PAGE_HTML)
        path = scrape_year(2019, tmp_path, fetcher)

        assert fetcher.calls == [2019]
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data == [
            {
                "judgment_date": "12-02-2019",
                "cause_title_case_no": "A & Ors. vs State",
                "subject": "Criminal",
                "judgment_summary": "Bail View",
                "pdf_link": "https://www.sci.gov.in/view-pdf/?diary_no=7&type=j",
            }
        ]

    @pytest.mark.parametrize("year", [2015, 2026])
    def test_year_out_of_range(self, tmp_path, year: int) -> None:
        fetcher = _StubFetcher(_PAGE_HTML)
        with pytest.raises(ValueError):
            scrape_year(year, tmp_path, fetcher)
        assert fetcher.calls == []

    def test_empty_table_is_not_found(self, tmp_path) -> None:
        html = "<div class='landmark_judgment_summary'><table><tr><th>Date</th></tr></table></div>"
        with pytest.raises(NotFoundError, match="no judgments found"):
            scrape_year(2019, tmp_path, _StubFetcher(html))
        assert not output_path(tmp_path, 2019).exists()

    def test_missing_table_is_not_found(self, tmp_path) -> None:
        with pytest.raises(NotFoundError):
            scrape_year(2019, tmp_path, _StubFetcher("<p>Under maintenance</p>"))
        assert not output_path(tmp_path, 2019).exists()

    def test_through_real_fetcher(self, tmp_path) -> None:
        fetcher = Fetcher(_session(_response(url="https://www.sci.gov.in/landmark-judgment-summaries/?judgment_year=2019")))
        path = scrape_year(2019, tmp_path / "nested" / "out", fetcher)
        assert path.exists()
        assert path.name == "sci_judgments_2019.json"
