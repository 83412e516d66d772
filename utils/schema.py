from __future__ import annotations

from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class Label(str, Enum):
    INIT = "INIT"
    LIST = "LIST"
    DETAIL = "DETAIL"


@dataclass(frozen=True)
class JobSummary:
    """
    Listing-level view of one job. `id` is the dedupe key (see
    `utils.transforms.job_id_from_url`).
    """

    id: str
    url: str
    title: str
    company: str = "Not specified"
    location: str = "Not specified"
    posted_at: Optional[str] = None


@dataclass(frozen=True)
class CrawlRequest:
    """
    One frontier entry. Never mutated: follow-ups and retries are derived
    with `dataclasses.replace`.
    """

    url: str
    label: Label
    page: Optional[int] = None
    search_context: Mapping[str, Any] = field(default_factory=dict)
    parent_job: Optional[JobSummary] = None
    retry_count: int = 0


DETAIL_FIELDS = [
    "jobType",
    "jobLocation",
    "nationality",
    "salary",
    "gender",
    "arabicFluency",
    "jobFunction",
    "companyIndustry",
]


@dataclass
class JobDetail:
    description_html: Optional[str] = None
    description_text: Optional[str] = None
    jobType: Optional[str] = None
    jobLocation: Optional[str] = None
    nationality: Optional[str] = None
    salary: Optional[str] = None
    gender: Optional[str] = None
    arabicFluency: Optional[str] = None
    jobFunction: Optional[str] = None
    companyIndustry: Optional[str] = None
    error: Optional[str] = None

    def data(self) -> Dict[str, Optional[str]]:
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name != "error"}


OUTPUT_COLUMNS = [
    "title",
    "company",
    "location",
    "date_posted",
    "url",
    "description_html",
    "description_text",
    *DETAIL_FIELDS,
]

REQUIRED_COLUMNS = ["title", "url"]


def build_record(summary: JobSummary, detail: Optional[JobDetail] = None) -> Dict[str, Any]:
    """
    Merge a summary with its (possibly partial) detail into an output record.

    Without a detail every detail column is None. `error` is only present
    when detail extraction or fetching failed for this job.
    """
    detail = detail or JobDetail()
    record: Dict[str, Any] = {
        "title": summary.title,
        "company": summary.company,
        "location": summary.location,
        "date_posted": summary.posted_at,
        "url": summary.url,
    }
    record.update(detail.data())
    if detail.error:
        record["error"] = detail.error
    return record


def validate_record(row: Mapping[str, Any]) -> List[str]:
    errors = []
    for k in REQUIRED_COLUMNS:
        if not row.get(k):
            errors.append(f"missing_required:{k}")
    v = row.get("url")
    if v and not str(v).startswith(("http://", "https://")):
        errors.append("bad_url")
    for k in ("description_html", "description_text", *DETAIL_FIELDS):
        if row.get(k) == "":
            errors.append(f"empty_string:{k}")
    return errors
