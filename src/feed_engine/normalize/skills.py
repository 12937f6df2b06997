"""
SignalCraft
Copyright (c) 2026 Chris Menendez.
All Rights Reserved.
See LICENSE for permitted use.
"""

from __future__ import annotations

import re
from typing import Dict, Iterable, List, Optional, Pattern, Sequence, Tuple

# Lowercase alias -> canonical taxonomy name.
SKILL_ALIASES: Dict[str, str] = {
    # JavaScript
    "js": "JavaScript", "javascript": "JavaScript", "ecmascript": "JavaScript", "es6": "JavaScript",
    "typescript": "TypeScript", "ts": "TypeScript",
    "node": "Node.js", "nodejs": "Node.js", "node.js": "Node.js", "node js": "Node.js",
    "react": "React", "reactjs": "React", "react.js": "React", "react js": "React",
    "vue": "Vue.js", "vuejs": "Vue.js", "vue.js": "Vue.js",
    "angular": "Angular", "angularjs": "Angular", "angular.js": "Angular",
    "next": "Next.js", "nextjs": "Next.js", "next.js": "Next.js",
    "remix": "Remix", "gatsby": "Gatsby",
    "express": "Express.js", "expressjs": "Express.js", "express.js": "Express.js",
    "nestjs": "NestJS", "nest.js": "NestJS",
    "svelte": "Svelte", "redux": "Redux", "jquery": "jQuery", "webpack": "Webpack",
    # Python
    "python": "Python", "python3": "Python", "python 3": "Python", "py": "Python",
    "django": "Django", "flask": "Flask", "fastapi": "FastAPI",
    "pandas": "Pandas", "numpy": "NumPy", "scipy": "SciPy",
    "pytorch": "PyTorch", "torch": "PyTorch", "tensorflow": "TensorFlow", "tf": "TensorFlow",
    "scikit-learn": "Scikit-learn", "sklearn": "Scikit-learn",
    # JVM
    "java": "Java", "spring": "Spring", "spring boot": "Spring Boot", "springboot": "Spring Boot",
    "kotlin": "Kotlin", "scala": "Scala",
    # Systems / other languages
    "rust": "Rust", "go": "Go", "golang": "Go", "c++": "C++", "cpp": "C++", "c": "C",
    "c#": "C#", "csharp": "C#", ".net": ".NET", "dotnet": ".NET",
    "ruby": "Ruby", "rails": "Ruby on Rails", "ruby on rails": "Ruby on Rails",
    "php": "PHP", "laravel": "Laravel", "symfony": "Symfony",
    "swift": "Swift", "ios": "iOS", "android": "Android", "flutter": "Flutter", "dart": "Dart",
    "react native": "React Native", "react-native": "React Native", "rn": "React Native",
    "elixir": "Elixir", "r": "R",
    # Data stores
    "sql": "SQL", "mysql": "MySQL", "postgres": "PostgreSQL", "postgresql": "PostgreSQL", "pg": "PostgreSQL",
    "sqlite": "SQLite", "mariadb": "MariaDB", "mssql": "SQL Server", "sql server": "SQL Server",
    "mongo": "MongoDB", "mongodb": "MongoDB", "redis": "Redis", "elasticsearch": "Elasticsearch",
    "dynamodb": "DynamoDB", "cassandra": "Cassandra",
    # Cloud / DevOps
    "aws": "AWS", "amazon web services": "AWS", "gcp": "GCP", "google cloud": "GCP",
    "azure": "Azure", "docker": "Docker", "kubernetes": "Kubernetes", "k8s": "Kubernetes",
    "terraform": "Terraform", "ansible": "Ansible", "jenkins": "Jenkins",
    "github actions": "GitHub Actions", "ci/cd": "CI/CD", "cicd": "CI/CD", "linux": "Linux",
    "cloudformation": "CloudFormation", "lambda": "AWS Lambda", "aws lambda": "AWS Lambda",
    # Data / ML
    "machine learning": "Machine Learning", "ml": "Machine Learning", "deep learning": "Deep Learning",
    "nlp": "NLP", "computer vision": "Computer Vision", "data science": "Data Science",
    "data engineering": "Data Engineering", "spark": "Apache Spark", "apache spark": "Apache Spark",
    "kafka": "Apache Kafka", "airflow": "Apache Airflow", "snowflake": "Snowflake", "dbt": "dbt",
    "tableau": "Tableau", "power bi": "Power BI",
    # Web
    "html": "HTML", "html5": "HTML", "css": "CSS", "css3": "CSS", "sass": "Sass",
    "tailwind": "Tailwind CSS", "tailwindcss": "Tailwind CSS",
    "graphql": "GraphQL", "rest": "REST", "rest api": "REST", "restful": "REST", "grpc": "gRPC",
    "git": "Git", "figma": "Figma", "jest": "Jest", "cypress": "Cypress", "pytest": "pytest",
    "agile": "Agile", "scrum": "Scrum",
    # Hospitality, trades, healthcare, retail, transport
    "dishwasher": "Dishwashing", "line cook": "Line Cook", "prep cook": "Prep Cook",
    "server": "Server", "waiter": "Server", "waitress": "Server", "bartender": "Bartender",
    "barista": "Barista", "housekeeping": "Housekeeping", "food safety": "Food Safety",
    "servsafe": "Food Safety", "cashier": "Cashier", "cash handling": "Cash Handling",
    "electrician": "Electrical", "plumbing": "Plumbing", "plumber": "Plumbing",
    "carpentry": "Carpentry", "carpenter": "Carpentry", "welding": "Welding", "welder": "Welding",
    "hvac": "HVAC", "warehouse": "Warehouse", "forklift": "Forklift Operation",
    "fork lift": "Forklift Operation", "general labor": "General Labor",
    "cna": "Certified Nursing Assistant", "certified nursing assistant": "Certified Nursing Assistant",
    "medical assistant": "Medical Assistant", "phlebotomy": "Phlebotomy", "patient care": "Patient Care",
    "hipaa": "HIPAA Compliance", "customer service": "Customer Service",
    "customer support": "Customer Service", "data entry": "Data Entry", "retail": "Retail Sales",
    "cdl": "CDL", "truck driver": "Truck Driver", "delivery driver": "Delivery Driver",
    "janitorial": "Janitorial", "osha": "OSHA Compliance",
}  # fmt: skip

# Too short or too common as English words to trust in free text; honored only in tag lists.
_TAG_ONLY_ALIASES = {
    "js", "ts", "py", "tf", "rn", "pg", "ml", "c", "r", "go", "node", "next", "express",
    "spring", "rest", "lambda", "server", "retail", "remix", "torch", "elixir", "swift", "rust",
}  # fmt: skip

# Framework -> the skills it implies on its own.
IMPLIED_SKILLS: Dict[str, Tuple[str, ...]] = {
    "Django": ("Python",),
    "Flask": ("Python",),
    "FastAPI": ("Python",),
    "Pandas": ("Python",),
    "NumPy": ("Python",),
    "PyTorch": ("Python",),
    "Scikit-learn": ("Python",),
    "Next.js": ("React",),
    "Gatsby": ("React",),
    "Remix": ("React",),
    "React Native": ("React",),
    "Express.js": ("Node.js",),
    "NestJS": ("Node.js",),
    "Spring Boot": ("Spring", "Java"),
    "Spring": ("Java",),
    "Ruby on Rails": ("Ruby",),
    "Laravel": ("PHP",),
    "Symfony": ("PHP",),
    "PostgreSQL": ("SQL",),
    "MySQL": ("SQL",),
    "AWS Lambda": ("AWS",),
}

# Parent -> children a parent skill gives partial credit toward.
SKILL_PARENTS: Dict[str, Tuple[str, ...]] = {
    "React": ("Next.js", "Remix", "Gatsby", "React Native"),
    "JavaScript": ("TypeScript", "Node.js", "React", "Vue.js", "Angular", "Next.js"),
    "TypeScript": ("JavaScript",),
    "Python": ("Django", "Flask", "FastAPI", "NumPy", "Pandas", "PyTorch", "TensorFlow", "Scikit-learn"),
    "Node.js": ("Express.js", "NestJS"),
    "SQL": ("PostgreSQL", "MySQL", "SQLite", "SQL Server", "MariaDB"),
    "AWS": ("CloudFormation", "AWS Lambda"),
    "Docker": ("Kubernetes",),
    "Java": ("Spring", "Spring Boot"),
    "Ruby": ("Ruby on Rails",),
    "PHP": ("Laravel", "Symfony"),
}


def _compile_text_patterns() -> List[Tuple[Pattern[str], str]]:
    patterns: List[Tuple[Pattern[str], str]] = []
    # Longest aliases first so "react native" wins over "react".
    for alias in sorted(SKILL_ALIASES, key=lambda value: (-len(value), value)):
        if alias in _TAG_ONLY_ALIASES:
            continue
        pattern = re.compile(rf"(?<![a-z0-9]){re.escape(alias)}(?![a-z0-9+#])")
        patterns.append((pattern, SKILL_ALIASES[alias]))
    return patterns


_TEXT_PATTERNS = _compile_text_patterns()


def normalize_skill(skill: str) -> str:
    """Canonical taxonomy name for a skill, or the trimmed input when unknown."""
    trimmed = " ".join((skill or "").split())
    if not trimmed:
        return ""
    return SKILL_ALIASES.get(trimmed.lower(), trimmed)


def normalize_skills(skills: Iterable[str]) -> List[str]:
    """Alias-map and dedupe (case-insensitive), keeping first-seen order."""
    seen = set()
    out: List[str] = []
    for skill in skills:
        canonical = normalize_skill(skill)
        if not canonical or canonical.lower() in seen:
            continue
        seen.add(canonical.lower())
        out.append(canonical)
    return out


def expand_implied(skills: Sequence[str]) -> List[str]:
    out = list(skills)
    seen = {skill.lower() for skill in out}
    for skill in skills:
        for implied in IMPLIED_SKILLS.get(skill, ()):
            if implied.lower() not in seen:
                seen.add(implied.lower())
                out.append(implied)
    return out


def extract_skills(title: str, description: str = "", tags: Optional[Iterable[str]] = None) -> List[str]:
    """
    Best-effort skill inference from a posting.

    Tags go through the full alias map; title and description only match
    aliases that are safe as free text. Result is sorted so re-ingestion of
    the same posting yields the same list.
    """
    found = normalize_skills(tags or [])
    text = f"{title or ''}\n{description or ''}".lower()
    for pattern, canonical in _TEXT_PATTERNS:
        if canonical not in found and pattern.search(text):
            found.append(canonical)
    return sorted(expand_implied(found), key=str.lower)


def related_skills(candidate_skills: Iterable[str], job_skills: Iterable[str]) -> List[str]:
    """Job skills the candidate lacks but holds a parent of (partial credit)."""
    have = {skill.lower() for skill in candidate_skills}
    related: List[str] = []
    for job_skill in job_skills:
        if job_skill.lower() in have:
            continue
        for parent, children in SKILL_PARENTS.items():
            if parent.lower() in have and job_skill in children:
                related.append(job_skill)
                break
    return related
