"""Loading, inspecting and serializing XLIFF 1.2 documents."""
import logging
import os
import re
from dataclasses import dataclass
from typing import Dict, List, Optional

from lxml import etree

from src.logging_config import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)

# A literal block is a single CDATA section, optionally padded with whitespace.
ESCAPED_BLOCK_PATTERN = re.compile(r'^\s*<!\[CDATA\[(.*)\]\]>\s*$', re.DOTALL)
_START_TAG_PATTERN = re.compile(r'^<[^>]*>')
_END_TAG_PATTERN = re.compile(r'</[^>]*>$')
# Characters outside the XML 1.0 Char production; lxml refuses to store them.
_XML_INVALID_CHAR_PATTERN = re.compile(
    "[^\u0009\u000a\u000d\u0020-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]"
)


class XliffParseError(Exception):
    """Raised when a file is not a usable XLIFF document."""


def is_escaped_block(markup: str) -> bool:
    """Return True if ``markup`` is wrapped in a CDATA literal-block marker."""
    return ESCAPED_BLOCK_PATTERN.match(markup) is not None


def unwrap_escaped_block(markup: str) -> str:
    """Strip the CDATA marker from ``markup``; plain markup is returned unchanged."""
    match = ESCAPED_BLOCK_PATTERN.match(markup)
    return match.group(1) if match else markup


def is_xml_compatible(text: str) -> bool:
    """Return True if every character of ``text`` may appear in an XML document."""
    return _XML_INVALID_CHAR_PATTERN.search(text) is None


def inner_markup(element: etree._Element) -> str:
    """
    Serialize the content of ``element`` without its own start and end tags.

    CDATA sections, entities and inline child elements are kept exactly as they
    appear in the serialized document.
    """
    serialized = etree.tostring(element, encoding='unicode', with_tail=False)
    if serialized.endswith('/>') and _START_TAG_PATTERN.fullmatch(serialized):
        return ''
    serialized = _START_TAG_PATTERN.sub('', serialized, count=1)
    return _END_TAG_PATTERN.sub('', serialized, count=1)


@dataclass(frozen=True)
class UnitView:
    """Read-only snapshot of a translation unit.

    ``target_has_markup`` is True when the target holds child elements, such as
    a lone ``<x/>`` placeholder, which carry no text of their own.
    """
    unit_id: str
    source_markup: str
    target_text: str
    target_has_markup: bool = False

    @property
    def has_target_content(self) -> bool:
        return bool(self.target_text.strip()) or self.target_has_markup


class XliffDocument:
    """
    An XLIFF document backed by an lxml tree.

    The tree is only mutated through ``set_target``; everything else reads
    ``UnitView`` snapshots.
    """

    def __init__(self, tree: etree._ElementTree, file_path: Optional[str] = None):
        self._tree = tree
        self.file_path = file_path
        root = tree.getroot()

        file_element = root if etree.QName(root).localname == 'file' else root.find('{*}file')
        if file_element is None:
            raise XliffParseError(f"No <file> element found in '{file_path}'.")
        self.source_language = file_element.get('source-language')
        self.target_language = file_element.get('target-language')
        if not self.source_language or not self.target_language:
            raise XliffParseError(
                f"'{file_path}' must declare both source-language and target-language on <file>."
            )

        self._units: Dict[str, etree._Element] = {}
        for unit in root.iter('{*}trans-unit'):
            unit_id = unit.get('id')
            if not unit_id:
                raise XliffParseError(f"Found a <trans-unit> without an id in '{file_path}'.")
            if unit_id in self._units:
                raise XliffParseError(f"Duplicate trans-unit id '{unit_id}' in '{file_path}'.")
            if unit.find('{*}source') is None:
                raise XliffParseError(f"trans-unit '{unit_id}' has no <source> in '{file_path}'.")
            self._units[unit_id] = unit

    @classmethod
    def load(cls, file_path: str) -> 'XliffDocument':
        parser = etree.XMLParser(strip_cdata=False, remove_blank_text=False, resolve_entities=False)
        try:
            tree = etree.parse(file_path, parser)
        except etree.XMLSyntaxError as xml_exc:
            raise XliffParseError(f"Invalid XML in '{file_path}': {xml_exc}") from xml_exc
        return cls(tree, file_path)

    @classmethod
    def from_string(cls, content: str) -> 'XliffDocument':
        parser = etree.XMLParser(strip_cdata=False, remove_blank_text=False, resolve_entities=False)
        try:
            root = etree.fromstring(content.encode('utf-8'), parser)
        except etree.XMLSyntaxError as xml_exc:
            raise XliffParseError(f"Invalid XML: {xml_exc}") from xml_exc
        return cls(etree.ElementTree(root))

    def __len__(self) -> int:
        return len(self._units)

    def units(self) -> List[UnitView]:
        """Return snapshots of all units in document order."""
        views = []
        for unit_id, unit in self._units.items():
            target = unit.find('{*}target')
            target_text = ''.join(target.itertext()) if target is not None else ''
            views.append(UnitView(
                unit_id=unit_id,
                source_markup=inner_markup(unit.find('{*}source')),
                target_text=target_text,
                target_has_markup=target is not None and len(target) > 0,
            ))
        return views

    def target_markup(self, unit_id: str) -> Optional[str]:
        target = self._units[unit_id].find('{*}target')
        return inner_markup(target) if target is not None else None

    def set_target(self, unit_id: str, text: str, escaped_block: bool) -> None:
        """
        Create or replace the target of a unit.

        Escaped-block units receive a CDATA section. Plain units receive ``text``
        as an inline-markup fragment so entities and inline tags survive; text
        that is not a well-formed fragment is stored as escaped character data.

        Raises:
            ValueError: If ``text`` contains characters XML cannot hold. The unit
                is left unchanged.
        """
        if not is_xml_compatible(text):
            raise ValueError(f"Translation for unit '{unit_id}' contains characters that are not allowed in XML.")

        unit = self._units[unit_id]
        target = unit.find('{*}target')

        # New content is built in full before the tree is touched.
        if escaped_block:
            new_text = etree.CDATA(text.replace('<![CDATA[', '').replace(']]>', ''))
            new_children = []
        else:
            fragment = _parse_fragment(text, target.nsmap if target is not None else unit.nsmap)
            if fragment is None:
                logger.debug(f"Translation for unit '{unit_id}' is not well-formed markup; storing it as text.")
                new_text, new_children = text, []
            else:
                new_text, new_children = fragment.text, list(fragment)

        if target is None:
            namespace = etree.QName(unit.find('{*}source')).namespace
            tag = f'{{{namespace}}}target' if namespace else 'target'
            target = etree.SubElement(unit, tag)
        else:
            for child in list(target):
                target.remove(child)
        target.text = new_text
        for child in new_children:
            target.append(child)

    def to_bytes(self) -> bytes:
        return etree.tostring(self._tree, encoding='utf-8', xml_declaration=True)

    def write(self, output_path: str) -> None:
        output_dir = os.path.dirname(output_path)
        if output_dir:
            os.makedirs(output_dir, exist_ok=True)
        with open(output_path, 'wb') as output_file:
            output_file.write(self.to_bytes())


def _parse_fragment(markup: str, nsmap: Dict[Optional[str], str]) -> Optional[etree._Element]:
    """Parse ``markup`` as element content under ``nsmap``; None if malformed."""
    declarations = ' '.join(
        f'xmlns="{uri}"' if prefix is None else f'xmlns:{prefix}="{uri}"'
        for prefix, uri in nsmap.items()
    )
    parser = etree.XMLParser(resolve_entities=False)
    try:
        return etree.fromstring(f'<fragment {declarations}>{markup}</fragment>'.encode('utf-8'), parser)
    except etree.XMLSyntaxError:
        return None
