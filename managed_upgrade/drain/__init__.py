"""Node drain configuration, pod predicates and time-based drain strategies."""