from models import db, ResearchPaper, PaperAuthor, PaperFile, StoredFile
from models.base import utcnow
from services.auth_services import formatting_id
from services.errors import APIError
from services import file_storage

BASIC_FIELDS = ('title', 'abstract', 'keywords', 'field', 'subfield', 'research_type', 'methodology')


def get_paper(paper_id):
    paper = ResearchPaper.get(paper_id)
    if paper is None:
        raise APIError("Research paper not found", 404)
    return paper


def create_paper(user, data, status='draft'):
    """Create a paper owned by `user` with `user` as primary author. The caller commits."""
    paper = ResearchPaper(
        paper_id=formatting_id('RP', ResearchPaper, 'paper_id'),
        submitted_by=user.user_id,
        status=status,
        keywords=[]
    )
    apply_basic_info(paper, data)
    db.session.add(paper)
    db.session.flush()

    add_author(paper, {
        "user_id": user.user_id,
        "name": user.full_name,
        "email": user.email,
        "affiliation": user.institution,
        "role": 'primary_author',
        "is_corresponding": True,
    })
    paper.mark_step('basic_info')
    paper.mark_step('authors')
    if status == 'published':
        publish(paper)
    return paper


def apply_basic_info(paper, data):
    for field in BASIC_FIELDS:
        if field in data:
            value = data[field]
            if isinstance(value, str):
                value = value.strip()
            setattr(paper, field, value)


def add_author(paper, data):
    order = max((a.order for a in paper.authors), default=0) + 1
    author = PaperAuthor(
        author_id=formatting_id('PA', PaperAuthor, 'author_id'),
        paper_id=paper.paper_id,
        user_id=data.get('user_id'),
        name=data['name'].strip(),
        email=(data.get('email') or '').strip().lower() or None,
        affiliation=data.get('affiliation'),
        role=data.get('role') or 'co_author',
        contribution=data.get('contribution'),
        is_corresponding=bool(data.get('is_corresponding', False)),
        order=order
    )
    paper.authors.append(author)
    db.session.flush()
    return author


def attach_file(paper, stored, kind, description=None, caption=None):
    """Link a stored upload to the paper. Manuscripts are versioned."""
    existing = paper.files_of(kind)
    version = 1
    if kind == 'manuscript' and existing:
        version = max(f.version for f in existing) + 1
    paper_file = PaperFile(
        paper_file_id=formatting_id('PF', PaperFile, 'paper_file_id'),
        paper_id=paper.paper_id,
        file_id=stored.file_id,
        kind=kind,
        original_name=stored.original_name,
        size=stored.size,
        description=description,
        caption=caption,
        order=len(existing) + 1,
        version=version
    )
    paper.files.append(paper_file)
    db.session.flush()
    return paper_file


def unlink_file(file_id):
    """
    Drop every paper link to a stored file. A paper left without a manuscript
    loses its manuscript step. The caller commits.
    """
    for link in PaperFile.query.filter_by(file_id=file_id).all():
        paper = link.paper
        paper.files.remove(link)
        if link.kind == 'manuscript' and paper.current_manuscript is None:
            paper.step_manuscript_at = None


def publish(paper):
    paper.status = 'published'
    paper.is_public = True
    if paper.published_date is None:
        paper.published_date = utcnow()


def delete_paper(paper):
    """Delete a paper together with its stored files. The caller commits."""
    file_ids = [f.file_id for f in paper.files]
    db.session.delete(paper)
    db.session.flush()
    for file_id in file_ids:
        file_storage.delete_file(file_id)


def can_modify(paper, user):
    return user is not None and (user.role == 'admin' or paper.submitted_by == user.user_id)


def manuscript_file(paper):
    manuscript = paper.current_manuscript
    if manuscript is None:
        raise APIError("No manuscript uploaded for this paper", 404)
    return StoredFile.get(manuscript.file_id)
