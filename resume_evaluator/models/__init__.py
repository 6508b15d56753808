from .file import ResumeFile
from .grading import ResumeGrading
# base and mixins are imported by the above as needed
