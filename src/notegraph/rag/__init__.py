"""notegraph retrieval — over-fetching KNN, target resolution, graph expansion, evidence."""
