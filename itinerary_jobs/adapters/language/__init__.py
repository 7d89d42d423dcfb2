"""Text providers: interest mapping, dwell estimation, reranking, descriptions."""
