"""
The six stages, individually and end to end.

Each stage function takes the previous stage's output, returns its own and,
when given an ``ArtifactStore``, persists it so the next stage (or a
report) can reload it without recomputing.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, Optional, Union

import numpy as np
import pandas as pd

from . import labels as topic_labels
from .artifacts import ArtifactStore
from .config import PipelineConfig
from .errors import AlignmentError, SchemaError
from .normalize import Lemmatizer, normalizer_from_config
from .records import Song, validate_songs
from .similarity import MedoidClustering, choose_clusters, gower_matrix, similarity_features
from .stm import PrevalenceTopicModel, document_topics, fit_topic_model, prevalence_table
from .vocab import Corpus, build_vocabulary, min_df_threshold, prune_by_proportion

log = logging.getLogger(__name__)


@dataclass
class ClusterResult:
    k: int
    clustering: MedoidClustering
    sweep: pd.DataFrame
    dissimilarity: np.ndarray
    songs: pd.DataFrame        # doc_topics plus a 'cluster' column


@dataclass
class PipelineResult:
    songs: pd.DataFrame
    corpus_full: Corpus
    corpus: Corpus
    model: PrevalenceTopicModel
    doc_topics: pd.DataFrame
    labels: pd.DataFrame
    top_songs: pd.DataFrame
    clusters: ClusterResult


def normalize_stage(songs: Union[pd.DataFrame, Iterable[Song]], cfg: PipelineConfig,
                    lemmatizer: Optional[Lemmatizer] = None, store: Optional[ArtifactStore] = None) -> pd.DataFrame:
    songs = validate_songs(songs, stage="normalize")
    clean = normalizer_from_config(cfg, lemmatizer).transform(songs)
    if store is not None:
        store.save_frame(clean, "songs_clean.parquet")
    return clean


def vocabulary_stage(clean: pd.DataFrame, store: Optional[ArtifactStore] = None) -> Corpus:
    clean = validate_songs(clean, stage="vocabulary", require_clean=True)
    corpus = build_vocabulary(clean)
    if store is not None:
        store.save_corpus(corpus, suffix="_full")
        store.update_manifest(n_songs_input=len(clean), n_songs_vocab=corpus.n_docs,
                              n_terms_full=corpus.n_terms, dropped_empty=corpus.dropped_ids)
    return corpus


def prune_stage(corpus: Corpus, cfg: PipelineConfig, store: Optional[ArtifactStore] = None) -> Corpus:
    pruned = prune_by_proportion(corpus, cfg.min_df_proportion)
    if store is not None:
        store.save_corpus(pruned)
        store.update_manifest(min_df=min_df_threshold(cfg.min_df_proportion, corpus.n_docs),
                              n_terms=pruned.n_terms, n_songs=pruned.n_docs,
                              dropped_pruning=pruned.dropped_ids[corpus.n_dropped:])
    return pruned


def topic_stage(corpus: Corpus, cfg: PipelineConfig, store: Optional[ArtifactStore] = None):
    corpus.validate("topic_model")
    field = cfg.prevalence_field
    if field and field not in corpus.meta.columns:
        raise SchemaError("topic_model", f"prevalence covariate {field!r} is not a metadata column")
    covariate = corpus.meta[field].tolist() if field else None

    model = fit_topic_model(
        corpus.counts,
        covariate,
        n_topics=cfg.n_topics,
        k_grid=cfg.k_grid,
        criterion=cfg.k_criterion,
        n_jobs=cfg.n_jobs,
        random_state=cfg.random_state,
        max_em_iter=cfg.max_em_iter,
        em_tol=cfg.em_tol,
        n_init=cfg.n_init,
    )
    doc_topics = document_topics(model, corpus.meta)
    if store is not None:
        store.save_model(model)
        store.save_array(model.topic_word_, "topic_word.npy")
        store.save_frame(doc_topics, "doc_topics.parquet")
        if field:
            prev = model.expected_prevalence().reset_index()
            store.save_frame(prev, f"prevalence_by_{field}.csv")
            observed = prevalence_table(doc_topics, field).reset_index()
            store.save_frame(observed, f"observed_prevalence_by_{field}.csv")
        if model.selection_ is not None:
            store.save_frame(model.selection_, "topic_k_sweep.csv")
        store.update_manifest(
            n_topics=model.n_topics_,
            bound=model.bound_,
            em_iterations=model.n_iter_,
            em_converged=model.converged_,
        )
    return model, doc_topics


def label_stage(model: PrevalenceTopicModel, corpus: Corpus, cfg: PipelineConfig,
                store: Optional[ArtifactStore] = None):
    if model.topic_word_.shape[1] != corpus.n_terms:
        raise AlignmentError("labels", f"model has {model.topic_word_.shape[1]} terms, vocabulary has {corpus.n_terms}")
    table = topic_labels.label_table(model.topic_word_, corpus.vocab, corpus.counts, n=cfg.label_n)
    songs = topic_labels.top_songs(model.doc_topic_, corpus.meta, n=cfg.top_songs_n)
    if store is not None:
        store.save_frame(table, "topic_labels.csv")
        store.save_frame(songs, "topic_top_songs.csv")
    return table, songs


def cluster_stage(doc_topics: pd.DataFrame, cfg: PipelineConfig,
                  store: Optional[ArtifactStore] = None) -> ClusterResult:
    features = similarity_features(doc_topics, cfg.extra_features)
    D = gower_matrix(features)
    k, clustering, sweep = choose_clusters(D, cfg.cluster_range, random_state=cfg.random_state,
                                           n_jobs=cfg.n_jobs)
    songs = doc_topics.copy()
    songs["cluster"] = clustering.labels.astype(int)
    if store is not None:
        store.save_array(D, "dissimilarity.npy")
        store.save_frame(sweep, "cluster_sweep.csv")
        store.save_frame(songs, "songs_with_clusters.parquet")
        store.update_manifest(n_clusters=k, medoid_ids=songs["id"].iloc[clustering.medoids].tolist())
    return ClusterResult(k=k, clustering=clustering, sweep=sweep, dissimilarity=D, songs=songs)


def run(songs: Union[pd.DataFrame, Iterable[Song]], cfg: Optional[PipelineConfig] = None, out_dir=None,
        lemmatizer: Optional[Lemmatizer] = None) -> PipelineResult:
    """Run all stages in order; any failed invariant aborts the run."""
    cfg = cfg or PipelineConfig()
    store = ArtifactStore(out_dir) if out_dir is not None else None
    if store is not None:
        store.update_manifest(config=cfg.to_dict())

    clean = normalize_stage(songs, cfg, lemmatizer, store)
    corpus_full = vocabulary_stage(clean, store)
    corpus = prune_stage(corpus_full, cfg, store)
    model, doc_topics = topic_stage(corpus, cfg, store)
    table, top = label_stage(model, corpus, cfg, store)
    clusters = cluster_stage(doc_topics, cfg, store)

    log.info("Run finished: %d songs, %d terms, K=%d, K'=%d",
             corpus.n_docs, corpus.n_terms, model.n_topics_, clusters.k)
    return PipelineResult(
        songs=clean,
        corpus_full=corpus_full,
        corpus=corpus,
        model=model,
        doc_topics=doc_topics,
        labels=table,
        top_songs=top,
        clusters=clusters,
    )
