#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Crawler (SCI landmark judgments)：按年份抓取 sci.gov.in 判决摘要页 -> 解析表格 -> 输出 JSON

本版特性
- 每个年份一个页面：/landmark-judgment-summaries/?judgment_year=YYYY
- 表格列布局逐年不同：优先按表头识别列，缺失时按位置回退；自动跳过序号列
- 判决 PDF 链接取行内第一个 .pdf / view-pdf 链接，并解析为绝对 URL
- 支持多线程并发（--concurrency）与失败重试（--retries / --retry-delay，固定间隔）

用法
    python sci_crawler.py --from 2016 --to 2020 \
      --out ./output \
      --concurrency 4 --retries 2 --retry-delay 2

依赖（最小集）
    pip install requests beautifulsoup4 lxml

输出目录
    {out}/sci_judgments_YYYY.json
    {out}/logs/app.log
"""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import tempfile
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Callable, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from bs4.element import Tag

DEFAULT_BASE_URL = 'https://www.sci.gov.in'
PAGE_PATH = '/landmark-judgment-summaries/?judgment_year={year}'
MIN_YEAR = 2016
MAX_YEAR = 2025
OUTPUT_NAME = 'sci_judgments_{year}.json'
DEFAULT_TIMEOUT = 30.0

TABLE_SELECTOR = '.landmark_judgment_summary table'

# 顺序固定：同一表头单元格只取第一个命中的角色
HEADER_RULES: Tuple[Tuple[str, Tuple[str, ...]], ...] = (
    ('date', ('date',)),
    ('cause', ('cause', 'case', 'title')),
    ('subject', ('subject',)),
    ('summary', ('summary',)),
    ('pdf', ('view', 'pdf')),
)

POSITIONAL_DEFAULTS: Mapping[str, int] = MappingProxyType({
    'date': 0,
    'cause': 1,
    'subject': 2,
    'summary': 3,
})

SERIAL_MAX_LEN = 6
SERIAL_MIN_CELLS = 5

# ----------------------------- 数据类与异常 -----------------------------

@dataclass
class Judgment:
    judgment_date: str = ''
    cause_title_case_no: str = ''
    subject: str = ''
    judgment_summary: str = ''
    pdf_link: str = ''

    def is_empty(self) -> bool:
        return not any((self.judgment_date, self.cause_title_case_no, self.subject,
                        self.judgment_summary, self.pdf_link))

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class HeaderMap:
    """表头角色 -> 列下标（0 起）。构建后只读。"""
    indices: Mapping[str, int]
    has_header: bool

    def get(self, role: str) -> Optional[int]:
        return self.indices.get(role)


@dataclass(frozen=True)
class Job:
    year: int


@dataclass
class RunResult:
    year: int
    succeeded: bool
    attempts: int
    output: Optional[str] = None
    error: Optional[str] = None


@dataclass
class RunStats:
    total: int = 0
    success: int = 0
    failed: int = 0


@dataclass(frozen=True)
class FetchedPage:
    url: str
    soup: BeautifulSoup


class FetchError(Exception):
    pass

class NotFoundError(Exception):
    pass

# ----------------------------- 工具函数 -----------------------------

def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def cell_text(cell: Tag) -> str:
    return cell.get_text().strip()


def is_serial_number(text: str) -> bool:
    """序号列启发式：非空、不超过 6 位、全部为 ASCII 数字。"""
    s = (text or '').strip()
    if not s or len(s) > SERIAL_MAX_LEN:
        return False
    return all('0' <= ch <= '9' for ch in s)

# ----------------------------- 下载器 -----------------------------

class Fetcher:
    def __init__(self, session: requests.Session, base_url: str = DEFAULT_BASE_URL,
                 timeout: Optional[float] = DEFAULT_TIMEOUT):
        self.session = session
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout

    def page_url(self, year: int) -> str:
        return self.base_url + PAGE_PATH.format(year=year)

    def fetch(self, year: int) -> FetchedPage:
        url = self.page_url(year)
        resp = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        if resp.status_code != 200:
            body = (resp.text or '')[:200]
            raise FetchError(f"fetch failed: HTTP {resp.status_code} {resp.reason or ''} - {body}".strip())
        # 相对链接以最终（重定向后）的地址为基准
        final_url = resp.url or url
        soup = BeautifulSoup(resp.text, 'lxml')
        return FetchedPage(final_url, soup)

# ----------------------------- 表格解析 -----------------------------

def locate_table(soup: BeautifulSoup) -> Optional[Tag]:
    table = soup.select_one(TABLE_SELECTOR)
    if table is None:
        table = soup.find('table')
    return table


def _role_for(header_text: str) -> Optional[str]:
    low = header_text.lower()
    for role, needles in HEADER_RULES:
        if any(n in low for n in needles):
            return role
    return None


def build_header_map(row: Optional[Tag]) -> HeaderMap:
    """只看第一行的 <th>。任一表头非空即视为有表头行。"""
    indices = {}
    has_header = False
    if row is not None:
        for i, th in enumerate(row.find_all('th')):
            text = cell_text(th)
            if not text:
                continue
            has_header = True
            role = _role_for(text)
            if role is not None:
                indices[role] = i
    return HeaderMap(MappingProxyType(indices), has_header)


def resolve_href(href: str, base_url: str) -> str:
    href = (href or '').strip()
    if not href:
        return ''
    # 无法解析的 href（如非法 IPv6 主机）原样返回
    try:
        if urlparse(href).scheme:
            return href
        return urljoin(base_url, href)
    except ValueError:
        return href


def _is_pdf_href(href: str) -> bool:
    low = href.strip().lower()
    return low.endswith('.pdf') or 'view-pdf' in low


def find_pdf_link(anchors: Iterable[Tag], base_url: str) -> str:
    hrefs = (a.get('href') for a in anchors)
    match = next((h for h in hrefs if h is not None and _is_pdf_href(h)), None)
    return resolve_href(match, base_url) if match is not None else ''


def extract_row(row: Tag, header: HeaderMap, base_url: str) -> Optional[Judgment]:
    cols = row.find_all('td')
    if not cols:
        return None

    shift = 0
    if len(cols) >= SERIAL_MIN_CELLS and is_serial_number(cell_text(cols[0])):
        shift = 1

    def read(role: str) -> str:
        # 表头下标是绝对位置，不叠加序号偏移
        idx = header.get(role)
        if idx is not None and idx < len(cols):
            return cell_text(cols[idx])
        pos = POSITIONAL_DEFAULTS[role] + shift
        if pos < len(cols):
            return cell_text(cols[pos])
        return ''

    judgment = Judgment(
        judgment_date=read('date'),
        cause_title_case_no=read('cause'),
        subject=read('subject'),
        judgment_summary=read('summary'),
        pdf_link=find_pdf_link(row.find_all('a'), base_url),
    )
    return None if judgment.is_empty() else judgment


def extract_judgments(table: Tag, base_url: str) -> List[Judgment]:
    rows = table.find_all('tr')
    if not rows:
        return []
    header = build_header_map(rows[0])
    body = rows[1:] if header.has_header else rows
    judgments: List[Judgment] = []
    for row in body:
        judgment = extract_row(row, header, base_url)
        if judgment is not None:
            judgments.append(judgment)
    logging.debug('header=%s has_header=%s rows=%d kept=%d',
                  dict(header.indices), header.has_header, len(body), len(judgments))
    return judgments


def parse_judgments(soup: BeautifulSoup, base_url: str) -> List[Judgment]:
    table = locate_table(soup)
    if table is None:
        raise NotFoundError('no judgments table on page')
    return extract_judgments(table, base_url)

# ----------------------------- 输出 -----------------------------

def output_path(out_dir: Path, year: int) -> Path:
    return out_dir / OUTPUT_NAME.format(year=year)


def write_json(out_dir: Path, year: int, judgments: List[Judgment]) -> Path:
    ensure_dir(out_dir)
    path = output_path(out_dir, year)
    # 先写临时文件再替换，失败时不留下半截 JSON
    fd, tmp = tempfile.mkstemp(prefix=path.name + '.', suffix='.tmp', dir=str(out_dir))
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            json.dump([j.to_dict() for j in judgments], f, ensure_ascii=False, indent=2)
            f.write('\n')
        os.replace(tmp, path)
    except BaseException:
        Path(tmp).unlink(missing_ok=True)
        raise
    return path

# ----------------------------- 主流程 -----------------------------

def scrape_year(year: int, out_dir: Path, fetcher: Fetcher) -> Path:
    if year < MIN_YEAR or year > MAX_YEAR:
        raise ValueError(f"year out of supported range {MIN_YEAR}..{MAX_YEAR}")
    page = fetcher.fetch(year)
    judgments = parse_judgments(page.soup, page.url)
    if not judgments:
        raise NotFoundError(f"no judgments found on page {page.url}")
    path = write_json(out_dir, year, judgments)
    logging.info('SUCCESS %d: %d judgments → %s', year, len(judgments), path)
    return path


class JobScheduler:
    """每个年份一个 Job。concurrency<=1 时顺序执行且不重试；否则线程池并发，每个 Job 最多 1+retries 次。"""

    def __init__(self, task: Callable[[int], object], concurrency: int = 1,
                 retries: int = 0, retry_delay: float = 2.0,
                 sleep: Callable[[float], None] = time.sleep):
        self.task = task
        self.concurrency = concurrency
        self.retries = max(0, retries)
        self.retry_delay = max(0.0, retry_delay)
        self.sleep = sleep

    def run(self, years: Iterable[int]) -> List[RunResult]:
        jobs = [Job(y) for y in years]
        if self.concurrency <= 1:
            results = [self._run_once(job) for job in jobs]
        else:
            with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix='worker') as executor:
                futures = []
                for job in jobs:
                    logging.info('queueing year %d', job.year)
                    futures.append(executor.submit(self._run_with_retry, job))
                results = [f.result() for f in futures]

        stats = RunStats(total=len(results))
        for r in results:
            if r.succeeded:
                stats.success += 1
            else:
                stats.failed += 1
        logging.info('RUN DONE: total=%d success=%d failed=%d', stats.total, stats.success, stats.failed)
        return results

    def _attempt(self, job: Job, attempt: int) -> Tuple[Optional[str], Optional[str]]:
        logging.info('scraping %d (attempt %d)', job.year, attempt)
        try:
            out = self.task(job.year)
        except Exception as e:
            logging.warning('FAILED %d (attempt %d): %s', job.year, attempt, e)
            logging.debug('traceback for %d', job.year, exc_info=True)
            return None, str(e) or type(e).__name__
        return (str(out) if out is not None else ''), None

    def _run_once(self, job: Job) -> RunResult:
        out, err = self._attempt(job, 1)
        if err is not None:
            logging.error('scrape failed for %d: %s', job.year, err)
            return RunResult(job.year, False, 1, error=err)
        logging.info('done year %d', job.year)
        return RunResult(job.year, True, 1, output=out)

    def _run_with_retry(self, job: Job) -> RunResult:
        max_attempts = 1 + self.retries
        err: Optional[str] = None
        for attempt in range(1, max_attempts + 1):
            out, err = self._attempt(job, attempt)
            if err is None:
                logging.info('done %d', job.year)
                return RunResult(job.year, True, attempt, output=out)
            if attempt < max_attempts:
                self.sleep(self.retry_delay)
        logging.error('GIVING UP %d after %d attempts: %s', job.year, max_attempts, err)
        return RunResult(job.year, False, max_attempts, error=err)


def init_logger(out_dir: Path, level: str = 'INFO') -> None:
    ensure_dir(out_dir / 'logs')
    log_path = out_dir / 'logs' / 'app.log'
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s %(levelname)s [%(threadName)s] %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(log_path, encoding='utf-8')
        ]
    )


def years_from_args(year: int, start: int, end: int) -> List[int]:
    if year:
        return [year]
    return list(range(start, end + 1))


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description='抓取 SCI landmark judgment summaries 并按年份输出 JSON')
    ap.add_argument('--year', type=int, default=0, help='单个年份（优先于 --from/--to）')
    ap.add_argument('--from', dest='start', type=int, default=2017, help='起始年份（含）')
    ap.add_argument('--to', dest='end', type=int, default=2018, help='结束年份（含）')
    ap.add_argument('--out', type=Path, default=Path('./output'), help='JSON 输出目录')
    ap.add_argument('--concurrency', type=int, default=1, help='并发 worker 数')
    ap.add_argument('--retries', type=int, default=0, help='失败年份的重试次数')
    ap.add_argument('--retry-delay', type=float, default=2, help='重试间隔（秒）')
    ap.add_argument('--base-url', type=str, default=DEFAULT_BASE_URL)
    ap.add_argument('--user-agent', type=str, default='sci-crawler/1.0')
    ap.add_argument('--timeout', type=float, default=DEFAULT_TIMEOUT, help='单次请求超时（秒）')
    ap.add_argument('--log-level', type=str, default='INFO')
    return ap.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    args = parse_args(argv)
    out_dir = Path(os.path.normpath(args.out))

    ensure_dir(out_dir)
    init_logger(out_dir, args.log_level)

    session = requests.Session()
    session.headers.update({'User-Agent': args.user_agent, 'Accept': 'text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8'})
    fetcher = Fetcher(session, base_url=args.base_url, timeout=args.timeout)

    years = years_from_args(args.year, args.start, args.end)
    if not years:
        logging.info('no years to scrape (from=%d to=%d)', args.start, args.end)
        return

    logging.info('Scraping years %s -> output dir %s', years, out_dir)
    scheduler = JobScheduler(
        lambda y: scrape_year(y, out_dir, fetcher),
        concurrency=args.concurrency,
        retries=args.retries,
        retry_delay=args.retry_delay,
    )
    scheduler.run(years)


if __name__ == '__main__':
    main()
