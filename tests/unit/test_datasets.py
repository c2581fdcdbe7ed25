"""Tests for nda_pipeline/datasets: CUAD, ContractNLI and template parsers, sources, downloader."""

import io
import json
import zipfile

import httpx
import pyarrow as pa
import pyarrow.parquet as pq
import pytest
from tenacity import wait_none

from nda_pipeline.datasets import CUAD_CATEGORIES, NLI_HYPOTHESES
from nda_pipeline.datasets.contract_nli import get_contract_nli_stats, parse_contract_nli_dataset
from nda_pipeline.datasets.cuad import get_cuad_stats, parse_cuad_dataset
from nda_pipeline.datasets.downloader import DatasetDownloader, get_dataset_path
from nda_pipeline.datasets.sources import PARSERS, DatasetSource, get_dataset_stats, get_parser
from nda_pipeline.datasets.templates import (
    get_template_stats,
    parse_bonterms_dataset,
    parse_markdown_template,
)
from nda_pipeline.exceptions import ApiError, UnknownSourceError
from nda_pipeline.models.bootstrap import Granularity
from nda_pipeline.utils.text import content_hash


async def _collect(iterator):
    return [record async for record in iterator]


@pytest.fixture
def cuad_file(tmp_path):
    table = pa.table(
        {
            "contract_name": ["AcmeNDA", "AcmeNDA", "BetaNDA"],
            "contract_text": ["Acme full text.", "Acme full text.", "Beta full text."],
            "category": ["Governing Law", "Non-Compete", "Governing Law"],
            "clause_text": ["Laws of Delaware govern.", "No competition for 2 years.", ""],
            "start_ix": [10, 50, 0],
            "end_ix": [34, 77, 0],
        }
    )
    path = tmp_path / "CUAD_v1.parquet"
    pq.write_table(table, path)
    return path


@pytest.fixture
def nli_published_file(tmp_path):
    data = {
        "documents": [
            {
                "id": 7,
                "text": "The Recipient shall keep all information secret. Copies may be retained.",
                "spans": [[0, 48], [49, 72]],
                "annotation_sets": [
                    {
                        "annotations": {
                            "nda-1": {"choice": "Entailment", "spans": [0]},
                            "nda-4": {"choice": "Contradiction", "spans": [1, 5]},
                            "nda-11": {"choice": "NotMentioned", "spans": []},
                        }
                    }
                ],
            }
        ],
        "labels": {"nda-1": {"short_description": "Explicit identification", "hypothesis": "Custom text."}},
    }
    path = tmp_path / "contract_nli.json"
    path.write_text(json.dumps(data))
    return path


@pytest.fixture
def template_dir(tmp_path):
    root = tmp_path / "bonterms-nda"
    root.mkdir()
    (root / "mutual-nda.md").write_text(
        "# Mutual NDA\n\nIntro text.\n\n## Definitions\n\nConfidential means secret.\n\n"
        "### Exclusions\n\nPublic info is excluded.\n\n## Term\n\nTwo years.\n"
    )
    (root / "empty.txt").write_text("ignored")
    return root


class TestLabels:

    def test_cuad_categories(self):
        assert len(CUAD_CATEGORIES) == 41
        assert "Governing Law" in CUAD_CATEGORIES

    def test_nli_hypotheses(self):
        assert sorted(NLI_HYPOTHESES) == list(range(1, 18))


class TestCuad:

    @pytest.mark.asyncio
    async def test_records(self, cuad_file):
        records = await _collect(parse_cuad_dataset(cuad_file))
        documents = [r for r in records if r.granularity == Granularity.DOCUMENT]
        clauses = [r for r in records if r.granularity == Granularity.CLAUSE]

        assert [d.source_id for d in documents] == ["cuad:doc:AcmeNDA", "cuad:doc:BetaNDA"]
        assert [c.source_id for c in clauses] == [
            "cuad:clause:AcmeNDA:10-34",
            "cuad:clause:AcmeNDA:50-77",
        ]
        assert clauses[0].category == "Governing Law"
        assert clauses[0].section_path == ["Governing Law"]
        assert clauses[0].content_hash == content_hash("Laws of Delaware govern.")
        assert all(r.source == "cuad" for r in records)

    @pytest.mark.asyncio
    async def test_stats(self, cuad_file):
        stats = await get_cuad_stats(cuad_file)
        assert stats["total_contracts"] == 2
        assert stats["total_clauses"] == 2
        assert stats["category_counts"] == {"Governing Law": 1, "Non-Compete": 1}


class TestContractNli:

    @pytest.mark.asyncio
    async def test_published_format(self, nli_published_file):
        records = await _collect(parse_contract_nli_dataset(nli_published_file))
        assert records[0].source_id == "cnli:doc:7"
        assert records[0].granularity == Granularity.DOCUMENT

        spans = records[1:]
        assert [s.source_id for s in spans] == ["cnli:span:7:h1:0", "cnli:span:7:h4:1"]
        assert spans[0].content == "The Recipient shall keep all information secret."
        assert spans[0].nli_label == "entailment"
        assert spans[0].hypothesis_id == "1"
        assert spans[0].section_path == ["Custom text."]
        assert spans[1].nli_label == "contradiction"
        assert spans[1].content == "Copies may be retained."

    @pytest.mark.asyncio
    async def test_flat_format(self, tmp_path):
        path = tmp_path / "flat.json"
        path.write_text(
            json.dumps(
                [
                    {
                        "id": "d1",
                        "text": "Body",
                        "spans": [{"text": "Recipient may share with employees.", "start": 0, "end": 10}],
                        "annotations": {"nda-2": {"choice": "not mentioned", "spans": [0]}},
                    }
                ]
            )
        )
        records = await _collect(parse_contract_nli_dataset(path))
        assert records[1].content == "Recipient may share with employees."
        assert records[1].nli_label == "not_mentioned"
        assert records[1].section_path == [NLI_HYPOTHESES[2]]

    @pytest.mark.asyncio
    async def test_stats(self, nli_published_file):
        stats = await get_contract_nli_stats(nli_published_file)
        assert stats["total_contracts"] == 1
        assert stats["total_spans"] == 2
        assert stats["label_counts"] == {"entailment": 1, "contradiction": 1}


class TestTemplates:

    def test_parse_markdown_sections(self):
        sections = parse_markdown_template(
            "# Mutual NDA\n\nIntro.\n\n## Definitions\n\nText.\n\n### Exclusions\n\nMore.\n\n## Term\n\nTwo years.\n"
        )
        assert [s.heading for s in sections] == ["Mutual NDA", "Definitions", "Exclusions", "Term"]
        assert sections[2].path == ["Mutual NDA", "Definitions", "Exclusions"]
        assert sections[3].path == ["Mutual NDA", "Term"]
        assert sections[3].content == "Two years."

    def test_headings_without_body_are_skipped(self):
        sections = parse_markdown_template("# Title\n\n## Empty\n\n## Full\n\nBody.\n")
        assert [s.heading for s in sections] == ["Full"]

    @pytest.mark.asyncio
    async def test_directory_records(self, template_dir):
        records = await _collect(parse_bonterms_dataset(template_dir))
        assert records[0].granularity == Granularity.TEMPLATE
        assert records[0].source_id == "bonterms:template:mutual-nda.md"
        assert records[0].section_path == ["mutual-nda"]

        sections = records[1:]
        assert len(sections) == 4
        assert sections[2].source_id == "bonterms:section:mutual-nda.md:2"
        assert sections[2].section_path == ["mutual-nda", "Mutual NDA", "Definitions", "Exclusions"]
        assert sections[2].category == "Exclusions"

    @pytest.mark.asyncio
    async def test_stats(self, template_dir):
        stats = await get_template_stats(template_dir, "bonterms")
        assert stats == {"total_templates": 1, "total_sections": 4, "avg_sections_per_template": 4.0}


class TestSources:

    def test_parser_table(self):
        assert set(PARSERS) == {s.value for s in DatasetSource}
        assert get_parser("cuad") is parse_cuad_dataset

    def test_unknown_source(self):
        with pytest.raises(UnknownSourceError):
            get_parser("nope")

    def test_custom_table(self):
        assert get_parser("x", {"x": parse_cuad_dataset}) is parse_cuad_dataset

    @pytest.mark.asyncio
    async def test_dataset_stats_dispatch(self, template_dir):
        stats = await get_dataset_stats("bonterms", template_dir)
        assert stats["total_templates"] == 1

    def test_unknown_stats_source(self, tmp_path):
        with pytest.raises(UnknownSourceError):
            get_dataset_stats("nope", tmp_path)


class TestDownloader:

    def test_dataset_path(self, tmp_path):
        assert get_dataset_path(DatasetSource.CUAD, tmp_path) == tmp_path / "CUAD_v1.parquet"

    @pytest.mark.asyncio
    async def test_cached_copy_is_reused(self, tmp_path):
        (tmp_path / "contract_nli.json").write_text("[]")

        def handler(request):
            raise AssertionError("should not download")

        downloader = DatasetDownloader(tmp_path, httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        result = await downloader.download(DatasetSource.CONTRACT_NLI)
        assert result.cached
        assert result.size_bytes == 2

    @pytest.mark.asyncio
    async def test_downloads_file(self, tmp_path):
        downloader = DatasetDownloader(
            tmp_path,
            httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, content=b"[]"))),
        )
        result = await downloader.download(DatasetSource.CONTRACT_NLI)
        assert not result.cached
        assert (tmp_path / "contract_nli.json").read_bytes() == b"[]"
        await downloader.close()

    @pytest.mark.asyncio
    async def test_extracts_zip(self, tmp_path):
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w") as archive:
            archive.writestr("Mutual-NDA-main/nda.md", "# NDA\n\nText.\n")
        downloader = DatasetDownloader(
            tmp_path,
            httpx.AsyncClient(
                transport=httpx.MockTransport(lambda r: httpx.Response(200, content=buffer.getvalue()))
            ),
        )
        result = await downloader.download(DatasetSource.BONTERMS)
        assert (result.path / "Mutual-NDA-main" / "nda.md").exists()

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, tmp_path, monkeypatch):
        monkeypatch.setattr(DatasetDownloader._fetch.retry, "wait", wait_none())
        responses = [httpx.Response(503), httpx.Response(200, content=b"[]")]
        downloader = DatasetDownloader(
            tmp_path, httpx.AsyncClient(transport=httpx.MockTransport(lambda r: responses.pop(0)))
        )
        result = await downloader.download(DatasetSource.CONTRACT_NLI)
        assert not result.cached
        assert responses == []

    @pytest.mark.asyncio
    async def test_not_found_is_not_retried(self, tmp_path):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(404)

        downloader = DatasetDownloader(tmp_path, httpx.AsyncClient(transport=httpx.MockTransport(handler)))
        with pytest.raises(ApiError):
            await downloader.download(DatasetSource.CONTRACT_NLI)
        assert len(calls) == 1
