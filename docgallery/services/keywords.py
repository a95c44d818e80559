"""
Keyword expansion: deterministic padding for under-populated keyword lists.

The analysis model is asked for at least 20 keywords but does not always
deliver. expand() tops the list up from a fixed rule table keyed by the
document type, then from generic descriptive terms. The rule table is a
hand-tuned heuristic; some types only ever receive generic terms.
"""

MIN_KEYWORDS = 20
MAX_KEYWORDS = 30

GENERIC_IMAGE_TYPE = "imagem geral"

# (substrings matched against the lower-cased document type, terms to add)
# First matching rule wins. Order matters.
KEYWORD_RULES: list[tuple[tuple[str, ...], tuple[str, ...]]] = [
    (
        ("passaporte", "passport"),
        (
            "Passaporte", "Documento de Viagem", "Identificação Internacional",
            "Viagem Internacional", "Fronteira", "Imigração", "Nacionalidade", "Visto",
            "Entrada no País", "Saída do País", "Aeroporto", "Consulado",
        ),
    ),
    (
        ("identidade", "rg"),
        (
            "Carteira de Identidade", "RG", "Registro Geral", "Documento de Identidade",
            "CPF", "Brasileiro", "Cidadão", "Nacional", "Identificação Pessoal",
        ),
    ),
    (
        ("comprovante",),
        (
            "Comprovante", "Comprovação", "Evidência", "Prova Documental",
            "Documento Comprobatório", "Atestado", "Declaração",
        ),
    ),
    (
        ("residência", "morada", "alojamento"),
        (
            "Autorização de Residência", "Título de Residência", "Renovação de Residência",
            "Morada", "Endereço", "Domicílio", "Habitação", "Portugal", "AIMA", "SEF",
            "Imigração",
        ),
    ),
    (
        ("nif", "fiscal"),
        (
            "NIF", "Número de Identificação Fiscal", "Autoridade Tributária",
            "Portal das Finanças", "Certidão de Não Dívida", "AT",
        ),
    ),
    (
        ("segurança social", "seguranca"),
        (
            "Segurança Social", "Segurança Social Direta", "Certidão de Não Dívida",
            "Portal da Segurança Social", "Balcão de Atendimento",
        ),
    ),
    (
        ("formulário", "formulario"),
        (
            "Formulário", "Formulário Online", "Portal Online", "Submissão Online",
            "Preenchimento", "Submeter",
        ),
    ),
    (
        ("meios", "subsistência", "subsistencia"),
        (
            "Comprovativo de Meios de Subsistência", "Declarações Bancárias",
            "Recibos de Vencimento", "Contrato de Trabalho", "Meios Financeiros",
        ),
    ),
    (
        ("matrícula", "matricula", "estudante"),
        (
            "Comprovativo de Matrícula", "Estudante", "Instituição de Ensino",
            "Frequência Escolar", "Matrícula Escolar",
        ),
    ),
]

GENERIC_TERMS: tuple[str, ...] = (
    "Documento Oficial", "Arquivo Digital", "Documento Escaneado", "Documento Original",
    "Documento Válido", "Assinado", "Carimbado", "Selado", "Foto Tipo Passe", "Fotografia",
    "Formulário Preenchido", "Certificado", "Registro Oficial", "Documento Português",
    "Processo Burocrático",
)


def category_terms(document_type: str) -> tuple[str, ...]:
    """Terms of the first rule whose substring appears in the document type."""
    doc_type = (document_type or GENERIC_IMAGE_TYPE).lower()
    for needles, terms in KEYWORD_RULES:
        if any(needle in doc_type for needle in needles):
            return terms
    return ()


def expand(keywords: list[str], document_type: str) -> list[str]:
    """
    Pad `keywords` up to MIN_KEYWORDS and cap at MAX_KEYWORDS.

    A candidate is skipped when its lower-cased form is already contained in
    any existing keyword. The input list is never mutated.
    """
    result = list(keywords)
    if len(result) >= MIN_KEYWORDS:
        return result[:MAX_KEYWORDS]

    for term in (*category_terms(document_type), *GENERIC_TERMS):
        if len(result) >= MIN_KEYWORDS:
            break
        needle = term.lower()
        if any(needle in k.lower() for k in result):
            continue
        result.append(term)

    return result[:MAX_KEYWORDS]


def count_valid(keywords: list[str]) -> int:
    """Number of non-blank keywords."""
    return sum(1 for k in keywords if isinstance(k, str) and k.strip())
