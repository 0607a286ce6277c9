"""Ingestion pipelines: document parsing, corpus scanning and project briefs."""

from .frontmatter import DocumentMetadata, split_header, parse_document, render_document
from .scanner import CorpusScanner, IndexingReport, walk_corpus
from .project_extractor import ProjectStepExtractor, GuideReferenceResolver, extract_challenges
from .project_scanner import index_projects

__all__ = [
    # Document parser
    'DocumentMetadata',
    'split_header',
    'parse_document',
    'render_document',

    # Corpus scanner
    'CorpusScanner',
    'IndexingReport',
    'walk_corpus',

    # Project briefs
    'ProjectStepExtractor',
    'GuideReferenceResolver',
    'extract_challenges',
    'index_projects'
]
