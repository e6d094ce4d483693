# Seeded into an empty store on first start so similarity search has something to match.
DEFAULT_EXAMPLES = [
    {
        "question": "Give me the list of CDEs in the lineage",
        "query": "MATCH (cde:CDE) RETURN cde.name, cde.description, cde.layer, cde.fqn ORDER BY cde.name",
        "metadata": {"domain": "Data Lineage", "complexity": "simple"},
    },
]
