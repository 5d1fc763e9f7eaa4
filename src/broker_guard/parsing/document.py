"""Positioned XML element tree built with a SAX reader.

The schema layer needs to report problems at the line and column of the
offending element, which ``xml.etree`` does not retain. This reader records
the start position of every element and forwards SAX warnings and errors
to a ``DiagnosticCollector``. External entities are never resolved.
"""

import logging
import xml.sax
import xml.sax.handler
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, List, Optional, TextIO, Union
from xml.sax.xmlreader import InputSource

from .diagnostics import (
    ERROR_XML_MALFORMED,
    ERROR_XML_VALIDATION,
    WARN_XML,
    DiagnosticCollector,
    LexicalPosition,
)

logger = logging.getLogger(__name__)


@dataclass
class Element:
    """An XML element with its attributes, children and start position."""

    tag: str
    namespace: Optional[str]
    attributes: Dict[str, str]
    position: LexicalPosition
    children: List["Element"] = field(default_factory=list)

    def children_named(self, tag: str) -> List["Element"]:
        return [c for c in self.children if c.tag == tag]


class _TreeBuilder(xml.sax.handler.ContentHandler, xml.sax.handler.ErrorHandler):
    def __init__(self, source: str, collector: DiagnosticCollector):
        super().__init__()
        self._source = source
        self._collector = collector
        self._locator = None
        self._stack: List[Element] = []
        self._text_reported: set = set()
        self.root: Optional[Element] = None

    def _position(self) -> LexicalPosition:
        if self._locator is None:
            return LexicalPosition(0, 0, self._source)
        return LexicalPosition(
            self._locator.getLineNumber() or 0,
            (self._locator.getColumnNumber() or 0) + 1,
            self._source,
        )

    def _exception_position(self, exc: xml.sax.SAXParseException) -> LexicalPosition:
        line = exc.getLineNumber()
        column = exc.getColumnNumber()
        return LexicalPosition(
            line if line is not None and line > 0 else 0,
            column + 1 if column is not None and column >= 0 else 0,
            self._source,
        )

    # ContentHandler

    def setDocumentLocator(self, locator):
        self._locator = locator

    def startElementNS(self, name, qname, attrs):
        uri, local = name
        attributes = {}
        for (attr_uri, attr_name), value in attrs.items():
            # xsi:schemaLocation and friends are not part of the model
            if attr_uri is None:
                attributes[attr_name] = value

        element = Element(
            tag=local,
            namespace=uri,
            attributes=attributes,
            position=self._position(),
        )
        if self._stack:
            self._stack[-1].children.append(element)
        else:
            self.root = element
        self._stack.append(element)

    def endElementNS(self, name, qname):
        self._stack.pop()

    def characters(self, content):
        if not self._stack or not content.strip():
            return
        element = self._stack[-1]
        if id(element) in self._text_reported:
            return
        self._text_reported.add(id(element))
        self._collector.warning(
            WARN_XML,
            self._position(),
            f"Unexpected text content in element '{element.tag}' is ignored",
        )

    # ErrorHandler

    def warning(self, exception):
        self._collector.warning(
            WARN_XML, self._exception_position(exception), exception.getMessage()
        )

    def error(self, exception):
        self._collector.error(
            ERROR_XML_VALIDATION, self._exception_position(exception), exception.getMessage()
        )

    def fatalError(self, exception):
        self._collector.fatal(
            ERROR_XML_MALFORMED, self._exception_position(exception), exception.getMessage()
        )
        raise exception


def read_document(
    stream: Union[BinaryIO, TextIO],
    source: str,
    collector: DiagnosticCollector,
) -> Optional[Element]:
    """Read *stream* into an element tree.

    Returns None when the document is not well-formed; the FATAL diagnostic
    has already been published to *collector* in that case.
    """
    builder = _TreeBuilder(source, collector)

    reader = xml.sax.make_parser()
    reader.setFeature(xml.sax.handler.feature_namespaces, True)
    reader.setFeature(xml.sax.handler.feature_external_ges, False)
    reader.setContentHandler(builder)
    reader.setErrorHandler(builder)

    input_source = InputSource(source)
    if isinstance(stream.read(0), str):
        input_source.setCharacterStream(stream)
    else:
        input_source.setByteStream(stream)

    try:
        reader.parse(input_source)
    except xml.sax.SAXParseException:
        logger.debug("Document %s is not well-formed", source)
        return None
    return builder.root
