from .project import Project, Contact, ProjectStatus, STATUS_TRANSITIONS

__all__ = ['Project', 'Contact', 'ProjectStatus', 'STATUS_TRANSITIONS']
