from .domain_analyzer import DomainAnalyzer

__all__ = ['DomainAnalyzer']
