#!/usr/bin/env python3
"""
Android string resource codec

Reads and writes the <resources>/<string> dialect of Android strings.xml
files. Element text is kept as inner XML so inline markup such as <b> or
<font color="..."> travels through translation untouched.
"""

import copy
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple, Union

from lxml import etree

from .errors import ResourceParseError
from .string_filter import is_excluded_name
from .string_utils import escape

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" encoding="utf-8"?>'
EMPTY_DOCUMENT = f"{XML_DECLARATION}\n<resources>\n</resources>\n"
DEFAULT_INDENT = "    "

_XML_DECLARATION_PATTERN = re.compile(
    r"<\?xml version=['\"]1\.0['\"] encoding=['\"]utf-8['\"]\?>", re.IGNORECASE
)


@dataclass
class StringElement:
    """One <string> entry of a resource file."""

    name: str
    text: str
    translatable: Optional[bool] = None
    other_attributes: Dict[str, str] = field(default_factory=dict)

    @property
    def is_immutable(self) -> bool:
        return self.translatable is False


@dataclass
class ExtractionResult:
    """Translatable pairs of a document plus the names that were skipped."""

    strings: List[Tuple[str, str]]
    excluded: List[str] = field(default_factory=list)
    non_translatable: List[str] = field(default_factory=list)


def _create_secure_parser() -> etree.XMLParser:
    """Return an XML parser configured to avoid external entity resolution."""
    return etree.XMLParser(
        resolve_entities=False,
        no_network=True,
        dtd_validation=False,
        load_dtd=False,
        recover=False,
        remove_blank_text=False,
    )


def _parse_root(content: Optional[str]):
    if content is None or not content.strip():
        raise ResourceParseError(
            "Resource document is empty",
            hint="Make sure the strings.xml file has a <resources> root element.",
        )
    try:
        root = etree.fromstring(content.encode("utf-8"), parser=_create_secure_parser())
    except etree.XMLSyntaxError as e:
        raise ResourceParseError(
            f"Malformed resource document: {e}",
            hint="Fix the XML syntax of the strings file and run again.",
        ) from e

    if root.tag != "resources":
        raise ResourceParseError(
            f"Expected a <resources> root element, found <{root.tag}>",
            hint="Only Android strings.xml files are supported.",
        )
    return root


def _xml_text(value: str) -> str:
    return value.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _serialize_inner_xml(element) -> str:
    """Serialize the inner XML of an element, preserving nested markup."""
    segments: List[str] = []

    if element.text:
        segments.append(_xml_text(element.text))

    for child in element:
        segments.append(etree.tostring(child, encoding="unicode", with_tail=False))
        if child.tail:
            segments.append(_xml_text(child.tail))

    return "".join(segments).strip()


def _parse_fragment(content: str):
    return etree.fromstring(
        f"<__wrapper__>{content}</__wrapper__>", parser=_create_secure_parser()
    )


def _set_element_inner_xml(element, content: Optional[str]) -> None:
    """Replace an element's inner XML while keeping nested markup intact."""
    for child in list(element):
        element.remove(child)

    content = (content or "").strip()
    if not content:
        element.text = None
        return

    try:
        wrapper = _parse_fragment(content)
    except etree.XMLSyntaxError:
        # A stray "<" that does not open a tag: keep everything as text.
        try:
            wrapper = _parse_fragment(content.replace("<", "&lt;"))
        except etree.XMLSyntaxError:
            element.text = content
            return

    element.text = wrapper.text
    for child in wrapper:
        element.append(child)


def _to_string_element(node) -> Optional[StringElement]:
    name = node.get("name", "")
    text = _serialize_inner_xml(node)
    if not name or not text:
        return None

    translatable: Optional[bool] = None
    raw_translatable = node.get("translatable")
    if raw_translatable is not None:
        translatable = raw_translatable.strip().lower() != "false"

    other_attributes = {
        key: value
        for key, value in node.attrib.items()
        if key not in ("name", "translatable")
    }
    return StringElement(name, text, translatable, other_attributes)


def parse(content: str) -> List[StringElement]:
    """
    Parse a strings.xml document into its <string> entries, in document order.

    Entries marked translatable="false" are kept (and flagged immutable);
    entries with an empty name or empty text are dropped.

    Raises:
        ResourceParseError: If the document is empty or not well-formed.
    """
    root = _parse_root(content)
    elements = []
    for node in root.findall("string"):
        element = _to_string_element(node)
        if element is not None:
            elements.append(element)
    logger.debug(f"Parsed {len(elements)} string elements")
    return elements


def extract_with_report(
    content: str, name_filter: Callable[[str], bool] = is_excluded_name
) -> ExtractionResult:
    """Extract translatable (name, text) pairs and record what was skipped."""
    result = ExtractionResult(strings=[])
    for element in parse(content):
        if element.is_immutable:
            result.non_translatable.append(element.name)
        elif name_filter(element.name):
            result.excluded.append(element.name)
        else:
            result.strings.append((element.name, element.text))

    logger.info(f"Found {len(result.strings)} strings to translate")
    if result.excluded:
        preview = ", ".join(result.excluded[:3])
        suffix = "..." if len(result.excluded) > 3 else ""
        logger.info(
            f"Skipped {len(result.excluded)} strings matching qualifier patterns: {preview}{suffix}"
        )
    if result.non_translatable:
        logger.info(
            f'Skipped {len(result.non_translatable)} strings with translatable="false"'
        )
    return result


def extract_translatable(content: str) -> List[Tuple[str, str]]:
    """Return the translatable (name, text) pairs of a document, in order."""
    return extract_with_report(content).strings


def _serialize_document(root) -> str:
    xml_bytes = etree.tostring(
        root.getroottree(), encoding="utf-8", xml_declaration=True
    )
    content = _XML_DECLARATION_PATTERN.sub(
        XML_DECLARATION, xml_bytes.decode("utf-8"), count=1
    )
    return content.rstrip("\n") + "\n"


def _build_string_node(element: StringElement):
    node = etree.Element("string")
    node.set("name", element.name)
    if element.translatable is not None:
        node.set("translatable", "true" if element.translatable else "false")
    for key, value in element.other_attributes.items():
        node.set(key, value)
    _set_element_inner_xml(node, element.text)
    return node


def render(elements: Iterable[StringElement], passthrough: Sequence = ()) -> str:
    """
    Render string entries as a complete strings.xml document, sorted by name.

    Element text is written as inner XML, already escaped.

    ``passthrough`` holds other resource nodes (plurals, string-array, ...)
    that are written unchanged after the strings.
    """
    root = etree.Element("resources")
    nodes = [_build_string_node(element) for element in sorted(elements, key=lambda e: e.name)]
    nodes.extend(copy.deepcopy(node) for node in passthrough)

    if not nodes:
        root.text = "\n"
        return _serialize_document(root)

    root.text = "\n" + DEFAULT_INDENT
    for node in nodes:
        node.tail = "\n" + DEFAULT_INDENT
        root.append(node)
    root[-1].tail = "\n"
    return _serialize_document(root)


def _load_for_merge(existing_content: Optional[str]) -> Tuple[List[StringElement], list]:
    if existing_content is None or not existing_content.strip():
        return [], []
    try:
        root = _parse_root(existing_content)
    except ResourceParseError as e:
        logger.warning(f"Existing output is not a valid resource file, starting fresh: {e}")
        return [], []

    elements = []
    passthrough = []
    for node in root:
        if not isinstance(node.tag, str):
            continue
        if node.tag == "string":
            element = _to_string_element(node)
            if element is not None:
                elements.append(element)
        else:
            passthrough.append(node)
    return elements, passthrough


def merge_into(
    existing_content: Optional[str], translations: Iterable[Tuple[str, str]]
) -> str:
    """
    Merge new translations into an existing strings.xml document.

    Entries of the existing document are indexed by name. A new translation
    replaces the existing text (keeping its other attributes) unless the
    existing entry is translatable="false", which is never changed. The
    result is the union of both sets, sorted by name, so merging the same
    translations twice yields the same document.
    """
    elements, passthrough = _load_for_merge(existing_content)
    by_name: Dict[str, StringElement] = {element.name: element for element in elements}

    kept = 0
    for name, raw_text in translations:
        text = escape(raw_text)
        current = by_name.get(name)
        if current is not None and current.is_immutable:
            kept += 1
            continue
        if current is not None:
            by_name[name] = StringElement(
                name, text, current.translatable, dict(current.other_attributes)
            )
        else:
            by_name[name] = StringElement(name, text)

    if kept:
        logger.debug(f'Kept {kept} existing entries marked translatable="false"')
    return render(by_name.values(), passthrough)


def read_source_file(path: Union[str, Path]) -> str:
    """
    Read a strings.xml file as UTF-8 text.

    Raises:
        ResourceParseError: If the file is not valid UTF-8.
        OSError: If the file cannot be read.
    """
    file_path = Path(path)
    try:
        return file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ResourceParseError(
            f"{file_path} is not valid UTF-8: {e}",
            hint="Save the strings file with UTF-8 encoding.",
        ) from e


def read_resource_file(path: Union[str, Path]) -> Optional[str]:
    """Like read_source_file, but a missing file reads as None."""
    file_path = Path(path)
    if not file_path.exists():
        return None
    return read_source_file(file_path)


def merge_into_file(
    path: Union[str, Path], translations: Iterable[Tuple[str, str]]
) -> Path:
    """Merge translations into the strings.xml at ``path``, creating it if needed."""
    file_path = Path(path)
    try:
        existing = read_resource_file(file_path)
    except ResourceParseError as e:
        logger.warning(f"Existing output is not a valid resource file, starting fresh: {e}")
        existing = None
    merged = merge_into(existing, translations)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(merged, encoding="utf-8")
    logger.info(f"Updated XML file: {file_path}")
    return file_path


def add_or_update(content: Optional[str], name: str, text: str) -> str:
    """
    Add or update a single <string> entry, keeping the rest of the file as is.

    An absent or blank document is replaced by an empty <resources> document
    first. A new entry is appended right before the closing root tag using
    the indentation already present in the file.
    """
    if content is None or not content.strip():
        content = EMPTY_DOCUMENT
    root = _parse_root(content)

    existing = None
    for node in root.findall("string"):
        if node.get("name") == name:
            existing = node
            break

    if existing is not None:
        if (existing.get("translatable") or "").strip().lower() == "false":
            logger.info(f'Keeping <string name="{name}">: marked translatable="false"')
            return content
        _set_element_inner_xml(existing, escape(text))
        logger.debug(f"Updated <string name='{name}'>")
        return _serialize_document(root)

    indent = DEFAULT_INDENT
    if len(root) > 0:
        m = re.match(r"\n([ \t]+)", root.text or "")
        if m:
            indent = m.group(1)

    new_elem = etree.Element("string", name=name)
    _set_element_inner_xml(new_elem, escape(text))
    if len(root) == 0:
        root.text = "\n" + indent
    else:
        root[-1].tail = "\n" + indent
    new_elem.tail = "\n"
    root.append(new_elem)
    logger.debug(f"Appended <string name='{name}'>")
    return _serialize_document(root)


def add_or_update_file(path: Union[str, Path], name: str, text: str) -> Path:
    """
    File version of add_or_update.

    Raises:
        ResourceParseError: If the existing file is not valid UTF-8 or not
            well-formed. The file is left untouched.
    """
    file_path = Path(path)
    updated = add_or_update(read_resource_file(file_path), name, text)
    file_path.parent.mkdir(parents=True, exist_ok=True)
    file_path.write_text(updated, encoding="utf-8")
    return file_path
