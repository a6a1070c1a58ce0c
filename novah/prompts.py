"""
Novah: Prompt Templates
=======================
Every template asks for strict JSON except the final report, which is
markdown. Callers fill them with str.format; literal braces are doubled.
"""

# ── Document pipeline ────────────────────────────────────────────────────────

CHUNK_SUMMARY_PROMPT = (
    "You are an expert condenser. Reduce the DOCUMENT CHUNK below\n"
    "to at most {max_words} words arranged in at most {max_depth} hierarchy levels.\n\n"
    "Output MUST be valid JSON matching this EXACT schema:\n"
    '{{"title": "...", "keywords": ["k1", "k2"], "children": [\n'
    '  {{"title": "...", "keywords": [], "children": []}}\n'
    "]}}\n\n"
    "Constraints:\n"
    "- title: short, non-empty.\n"
    "- keywords: at most {max_keywords} per node.\n\n"
    "CHUNK = ```{chunk}```"
)

MERGE_TREES_PROMPT = (
    "Merge these node trees into ONE tree, deduplicating titles.\n"
    "If the total character count exceeds {char_limit}, collapse the deepest\n"
    "sibling level into keyword lists of its parent instead of nested children.\n"
    "Preserve the JSON schema exactly:\n"
    '{{"title": "...", "keywords": ["..."], "children": [...]}}\n\n'
    "TREES = ```{trees}```"
)

# ── Mind map ─────────────────────────────────────────────────────────────────

EXPAND_NODE_PROMPT = (
    "A research mind map is shown as an indented outline. Suggest new sub-topics\n"
    "for the node \"{node_label}\" that help answer the QUESTION.\n\n"
    "Output MUST be valid JSON matching this EXACT schema:\n"
    '{{"new_nodes": [{{"title": "...", "keywords": ["..."], "children": []}}]}}\n\n'
    "Constraints:\n"
    "- Between 2 and {max_children} new nodes.\n"
    "- Max 5 words per title; do not repeat titles already in the map.\n\n"
    "MAP =\n```\n{outline}\n```\n"
    "QUESTION = ```{question}```"
)

# ── Research pipeline ────────────────────────────────────────────────────────

SEARCH_QUERIES_PROMPT = (
    "Plan the research for the user QUERY. Produce at most {count} targeted\n"
    "search queries, each with the purpose it serves. Mode: {mode}.\n\n"
    "Output MUST be valid JSON matching this EXACT schema:\n"
    '{{"queries": [{{"query": "...", "purpose": "..."}}]}}\n\n'
    "QUERY = ```{query}```\n"
    "DOCUMENT CONTEXT = ```{context}```"
)

LEARNINGS_PROMPT = (
    "Act as a web researcher answering the SEARCH QUERY.\n"
    "Return at most {count} concise learnings (1-3 sentences each), each\n"
    "attributed to the public source URL it would come from.\n\n"
    "Output MUST be valid JSON matching this EXACT schema:\n"
    '{{"learnings": [{{"summary": "...", "source_url": "https://..."}}]}}\n\n'
    "SEARCH QUERY = ```{query}```\n"
    "PURPOSE = ```{purpose}```"
)

REFLECTION_PROMPT = (
    "Judge whether the LEARNINGS are sufficient to write a {mode} report of\n"
    "about {word_budget} words answering the QUERY.\n\n"
    "Output MUST be valid JSON matching this EXACT schema:\n"
    '{{"decision": "sufficient" | "insufficient", "reason": "..."}}\n\n'
    "QUERY = ```{query}```\n"
    "LEARNINGS = ```{learnings}```"
)

FINAL_REPORT_PROMPT = (
    "Write a research report in markdown answering the QUERY.\n"
    "Use at most {word_budget} words. Structure:\n"
    "1. Executive Summary\n"
    "2. Key Insights (3-5 points)\n"
    "3. Detailed Analysis\n"
    "4. Recommendations\n"
    "5. Conclusion\n\n"
    "Ground the report in the LEARNINGS and DOCUMENT CONTEXT.\n\n"
    "QUERY = ```{query}```\n"
    "DOCUMENT CONTEXT = ```{context}```\n"
    "LEARNINGS = ```{learnings}```"
)
