"""Prompt templates for legal document generation and summaries."""

from app.core.schemas_generation import SummaryType

LEGAL_AI_INSTRUCTION = """You are a professional legal AI assistant specialized in drafting and reviewing business contracts. Your goal is to generate complete, legally sound documents based on the user's input.

GUIDELINES:
- Always include clear clauses for parties, terms, confidentiality, responsibilities, and signatures
- Use simple, human-readable legal language while maintaining legal precision
- Adjust templates based on country-specific laws when applicable (default to US/International standards)
- Keep formatting clean and professional with proper sections and numbering
- Assume documents are for small startups or freelancers unless otherwise specified
- Include standard legal disclaimers and review recommendations
- Provide complete documents, not just outlines or summaries
- Use markdown formatting for better readability

DOCUMENT STRUCTURE:
1. Title and parties identification
2. Purpose and scope
3. Terms and conditions
4. Rights and obligations
5. Duration and termination
6. Governing law and jurisdiction
7. Signature blocks
8. Legal disclaimer

Remember: Always recommend legal review before use."""

SUMMARY_INSTRUCTION = "You summarize legal documents accurately and neutrally for non-lawyers."

SUMMARY_TEMPLATES: dict[SummaryType, str] = {
    SummaryType.BRIEF: (
        "Please provide a brief summary (2-3 sentences) of the following legal document:\n\n{content}"
    ),
    SummaryType.DETAILED: (
        "Please provide a detailed summary of the following legal document, including key terms, "
        "obligations, and important clauses:\n\n{content}"
    ),
    SummaryType.KEY_POINTS: (
        "Please extract the key points from the following legal document as a bulleted list:\n\n{content}"
    ),
}


def build_generation_prompt(
    prompt: str,
    document_type: str,
    country: str,
    business_type: str,
) -> str:
    """Embed the detected parameters and the user request in one completion prompt."""
    return f"""CONTEXT:
- Document Type: {document_type}
- Country/Jurisdiction: {country}
- Business Type: {business_type}

USER REQUEST:
{prompt}

Please generate a complete, professional legal document that addresses all the requirements mentioned above. Include proper legal language, structure, and all necessary clauses for this type of agreement."""


def build_summary_prompt(content: str, summary_type: SummaryType) -> str:
    return SUMMARY_TEMPLATES[summary_type].format(content=content)
