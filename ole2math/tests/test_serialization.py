import json

from ole2math.extractors.data_types import (
    BlobStrategy,
    ConversionReport,
    EquationRecord,
    ErrorKind,
)
from ole2math.extractors.serialization import serialize_report


def _report() -> ConversionReport:
    return ConversionReport(
        equations=[
            EquationRecord(
                relationship_id="rId5",
                embedding_path="word/embeddings/oleObject1.bin",
                name="oleObject1.bin",
                prog_id="Equation.3",
                math_markup="<math><mi>x</mi></math>",
                latex="x",
                document_order_index=1,
                blob_strategy=BlobStrategy.DIRECT,
            ),
            EquationRecord(
                relationship_id="rId6",
                error_kind=ErrorKind.CONVERTER_TIMEOUT,
                diagnostic="Equation converter timed out after 30.0s",
                document_order_index=2,
            ),
        ],
        html_fallback="<html></html>",
        html_inline="<p>x</p>",
        paragraphs=["<p>x</p>"],
    )


def test_serialize_report_is_json_safe() -> None:
    payload = serialize_report(_report())

    # must not raise
    json.dumps(payload)
    assert payload["_type"] == "ConversionReport"
    assert payload["count"] == 2
    assert payload["equations"][0]["blob_strategy"] == "direct"
    assert payload["equations"][1]["error_kind"] == "ConverterTimeout"
    assert payload["equations"][1]["blob_strategy"] is None



def test_serialize_single_record_has_no_count() -> None:
    payload = serialize_report(_report().equations[0])

    assert payload["_type"] == "EquationRecord"
    assert payload["relationship_id"] == "rId5"
    assert "count" not in payload


def test_serialize_non_dataclass_is_wrapped() -> None:
    assert serialize_report(["a", ErrorKind.NO_MTEF_FOUND]) == {
        "value": ["a", "NoMtefFound"]
    }
