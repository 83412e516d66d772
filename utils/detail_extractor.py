"""
Detail-page extraction: job description plus labelled metadata fields.

The description container is cloned before cleaning so the field lookups,
which run against the same document, still see the original markup. Every
piece is failure-isolated: an exception while reading one part leaves that
part None and is reported through `JobDetail.error`, never raised.
"""

from __future__ import annotations

import copy
import logging

from typing import Dict, List, Optional, Sequence, Tuple

from bs4 import BeautifulSoup as BS, Tag

from utils.extractors import text
from utils.schema import JobDetail
from utils.transforms import clean_text, compact_html, none_if_placeholder

logger = logging.getLogger(__name__)

DESCRIPTION_SELECTORS = [
    ".job-description",
    "[itemprop='description']",
    ".job-details",
    ".description",
    "#job-description",
    ".job-body",
]

NOISE_SELECTORS = [
    "script",
    "style",
    "button",
    "form",
    ".ribbon",
    ".promo",
    ".promoted",
    ".apply-btn",
    "[class*='apply']",
]

COMPANY_BOUNDARY = "about the company"
HEADING_TAGS = ("h1", "h2", "h3", "h4", "h5", "h6", "strong", "b")
BLOCK_TAGS = ("p", "ul", "ol")
LIST_TAGS = ("ul", "ol")

# Recruitment-agency self promotion appended to many postings.
BOILERPLATE_PHRASES = (
    "gulftalent is the leading",
    "register your cv",
    "apply now to be considered",
    "we regret that only shortlisted candidates",
    "click here to apply",
)

FIELD_LABELS: Dict[str, str] = {
    "jobType": "Job Type",
    "jobLocation": "Job Location",
    "nationality": "Nationality",
    "salary": "Salary",
    "gender": "Gender",
    "arabicFluency": "Arabic Fluency",
    "jobFunction": "Job Function",
    "companyIndustry": "Company Industry",
}

LABEL_TAGS = ("span", "div", "dt", "th", "td", "label", "strong", "b", "h4", "h5", "p", "li")
VALUE_TAGS = ("span", "div", "dd", "td", "p", "a", "strong", "b", "li")


def find_description_container(
    soup: BS, selectors: Sequence[str] = DESCRIPTION_SELECTORS
) -> Optional[Tag]:
    for selector in selectors:
        el = soup.select_one(selector)
        if el is not None:
            return el
    return None


def _strip_company_section(container: Tag) -> None:
    """Remove the "About the Company" heading and everything after it."""
    heading = container.find(
        lambda t: t.name in HEADING_TAGS
        and " ".join(t.get_text(" ", strip=True).split()).rstrip(":").lower()
        == COMPANY_BOUNDARY
    )
    if heading is None:
        return
    node: Tag = heading
    while node is not None and node is not container:
        for sib in list(node.next_siblings):
            sib.extract()
        node = node.parent
    heading.decompose()


def _is_boilerplate(fragment: str) -> bool:
    lowered = fragment.lower()
    return any(p in lowered for p in BOILERPLATE_PHRASES)


def _block_text(block: Tag) -> str:
    if block.name in LIST_TAGS:
        return "\n".join(
            li.get_text(" ", strip=True) for li in block.find_all("li", recursive=False)
        )
    return block.get_text(" ", strip=True)


def clean_description(container: Tag) -> Tuple[Optional[str], Optional[str]]:
    """
    Return ``(html, text)`` for a description container without mutating it.

    Paragraphs and bulleted lists are preferred, one text block each with
    list items on their own lines; when the cleaned container has neither,
    its whole remaining content is used.
    """
    work = copy.copy(container)
    for selector in NOISE_SELECTORS:
        for el in work.select(selector):
            if not el.decomposed:
                el.decompose()
    _strip_company_section(work)
    for li in work.find_all("li"):
        if not li.decomposed and _is_boilerplate(text(li)):
            li.decompose()

    blocks: List[Tag] = [
        el
        for el in work.find_all(BLOCK_TAGS)
        if el.find_parent(BLOCK_TAGS) in (None, work)
        and text(el)
        and not _is_boilerplate(text(el))
    ]
    if blocks:
        html = "".join(str(el) for el in blocks)
        body = "\n\n".join(_block_text(el) for el in blocks)
    else:
        html = work.decode_contents()
        body = work.get_text("\n")
        if _is_boilerplate(body):
            body = "\n".join(
                line for line in body.split("\n") if not _is_boilerplate(line)
            )
    return compact_html(html), clean_text(body)


def _label_matches(tag: Tag, label: str) -> bool:
    if tag.name not in LABEL_TAGS:
        return False
    own = " ".join(tag.get_text(" ", strip=True).split()).rstrip(":").strip()
    return own.lower() == label.lower()


def _value_in(scope: Tag, label_el: Tag, label: str) -> Optional[str]:
    candidates = [
        el
        for el in scope.find_all(VALUE_TAGS)
        if el is not label_el
        and label_el not in el.parents
        and el not in label_el.parents
        and text(el)
        and text(el).rstrip(":").lower() != label.lower()
    ]
    if candidates:
        return text(candidates[-1])
    return None


def extract_field(soup: BS, label: str, max_levels: int = 2) -> Optional[str]:
    """
    Read one labelled metadata value.

    The label element is the first innermost element whose text equals
    `label`; the value is the last value element inside the label's enclosing
    element that is neither the label nor nested in it. When the enclosing
    element holds nothing else, one more level up is tried (label and value
    in sibling columns), and finally the text left after the label itself.
    """
    matches = soup.find_all(lambda t: _label_matches(t, label))
    label_el = next(
        (m for m in matches if m.find(lambda t: _label_matches(t, label)) is None),
        None,
    )
    if label_el is None or label_el.parent is None:
        return None

    scope = label_el.parent
    for _ in range(max_levels):
        if scope is None or scope.name in ("body", "html", "[document]"):
            break
        value = _value_in(scope, label_el, label)
        if value:
            return none_if_placeholder(value)
        if text(scope) != text(label_el):
            break
        scope = scope.parent

    parent_text = text(label_el.parent)
    remainder = parent_text.replace(text(label_el), "", 1).strip(" :")
    return none_if_placeholder(remainder)


def extract_detail(
    soup: BS,
    description_selectors: Sequence[str] = DESCRIPTION_SELECTORS,
    field_labels: Optional[Dict[str, str]] = None,
) -> JobDetail:
    """
    Build a JobDetail from a detail-page document. Never raises.

    Args:
        soup: Parsed detail page.
        description_selectors: Candidate containers for the job body, in priority order.
        field_labels: Output field name -> literal label text on the page.

    Returns:
        JobDetail with None for anything that could not be read; `error`
        lists the parts that failed with an exception.
    """
    detail = JobDetail()
    errors: List[str] = []

    try:
        container = find_description_container(soup, description_selectors)
        if container is not None:
            detail.description_html, detail.description_text = clean_description(
                container
            )
            if detail.description_html is None or detail.description_text is None:
                detail.description_html = detail.description_text = None
    except Exception as e:
        logger.exception("detail:description:error")
        detail.description_html = detail.description_text = None
        errors.append(f"description: {e}")

    for name, label in (field_labels or FIELD_LABELS).items():
        try:
            setattr(detail, name, extract_field(soup, label))
        except Exception as e:
            logger.warning(f"detail:field:error field={name} error={e!r}")
            setattr(detail, name, None)
            errors.append(f"{name}: {e}")

    if errors:
        detail.error = "; ".join(errors)
    return detail
